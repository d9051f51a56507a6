import io

import pandas as pd

from models import db, Route


def test_create_route_api(client):
    resp = client.post('/rutas/api/', json={'date': '2024-05-01', 'advisor_id': 7,
                                            'advisor_name': 'Luis Pérez', 'lenses_received': 4})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['date'] == '2024-05-01'
    assert body['lenses_received'] == 4
    assert body['lenses_delivered'] == 0
    assert body['status'] == 'Open'


def test_create_route_requires_date_and_advisor(client):
    assert client.post('/rutas/api/', json={'advisor_id': 7}).status_code == 400
    assert client.post('/rutas/api/', json={'date': '01/05/2024', 'advisor_id': 7}).status_code == 400
    assert client.post('/rutas/api/', json={'date': '2024-05-01'}).status_code == 400
    assert client.post('/rutas/api/', json={'date': '2024-05-01', 'advisor_id': 7,
                                            'cards_received': -1}).status_code == 400


def test_create_route_form_redirects_to_detail(client):
    resp = client.post('/rutas/add', data={'date': '2024-05-02', 'advisor_id': '3'})
    assert resp.status_code == 302
    route = Route.query.one()
    assert resp.headers['Location'].endswith(f'/rutas/{route.id}')
    assert client.get(f'/rutas/{route.id}').status_code == 200
    assert client.get('/rutas/').status_code == 200


def test_route_detail_includes_deliveries(client, scenario):
    route, lens, payment = scenario
    client.post('/entregas/api/', json={'route_id': route.id, 'lens_order_id': lens.id,
                                        'payment_id': payment.id, 'status': 'Delivered',
                                        'reason': 'Entrega completa'})

    body = client.get(f'/rutas/api/{route.id}').get_json()

    assert body['lenses_delivered'] == 1
    assert body['deliveries'][0]['folio'] == 'V001'


def test_close_route_blocks_new_deliveries(client, scenario):
    route, lens, _ = scenario

    resp = client.post(f'/rutas/{route.id}/close', data={'end_time': '18:30'})
    assert resp.status_code == 302
    db.session.expire_all()
    closed = db.session.get(Route, route.id)
    assert closed.status == 'Closed'
    assert closed.end_time == '18:30'

    resp = client.post('/entregas/api/', json={'route_id': route.id, 'lens_order_id': lens.id,
                                               'status': 'Delivered', 'reason': 'Entrega completa'})
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'route_id'


def test_export_route_csv(client, scenario):
    route, lens, payment = scenario
    client.post('/entregas/api/', json={'route_id': route.id, 'lens_order_id': lens.id,
                                        'payment_id': payment.id, 'status': 'Delivered',
                                        'reason': 'Entrega completa', 'time': '10:15'})

    resp = client.get(f'/rutas/{route.id}/export?format=csv')

    assert resp.status_code == 200
    assert resp.mimetype == 'text/csv'
    df = pd.read_csv(io.StringIO(resp.data.decode()))
    assert list(df['Folio']) == ['V001']
    assert list(df['Status']) == ['Delivered']
    assert list(df['Amount']) == [250.0]


def test_export_route_excel(client, scenario):
    route, _, _ = scenario

    resp = client.get(f'/rutas/{route.id}/export?format=excel')

    assert resp.status_code == 200
    df = pd.read_excel(io.BytesIO(resp.data), engine='openpyxl')
    assert list(df.columns)[:3] == ['Delivery', 'Time', 'Folio']
    assert df.empty


def test_pending_listings(client, make_lens_order, make_payment):
    make_lens_order('V001')
    make_lens_order('V002', status='NotDelivered')
    make_lens_order('V003', status='Delivered')
    make_payment('V001')
    make_payment('V002', status='Paid')

    lenses = client.get('/lentes/api/pending').get_json()
    payments = client.get('/pagos/api/pending').get_json()

    assert [l['folio'] for l in lenses] == ['V001', 'V002']
    assert [p['folio'] for p in payments] == ['V001']
    assert len(client.get('/lentes/api/').get_json()) == 3
    assert client.get('/lentes/?status=Delivered').status_code == 200
    assert client.get('/pagos/?folio=V001').status_code == 200


def test_close_route_rejects_bad_end_time(client, make_route):
    route = make_route()

    resp = client.post(f'/rutas/{route.id}/close', data={'end_time': '25:99'})

    assert resp.status_code == 302
    db.session.expire_all()
    route = db.session.get(Route, route.id)
    assert route.status == 'Open'
    assert route.end_time is None
