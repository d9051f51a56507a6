# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - DATABASE_URL points at a throwaway SQLite file before the app imports
# - Tables are dropped and recreated for every test
# - Each test runs inside one pushed app context (shared db.session)
# - Factory fixtures build sales, routes, lens orders and payments
# ---------------------------------------------------------------------

import os
import tempfile
from datetime import date
from pathlib import Path

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix='optica-tests-')
os.environ['DATABASE_URL'] = f"sqlite:///{Path(_TMP_DIR) / 'test.db'}"
os.environ.setdefault('SECRET_KEY', 'test-secret')

from werkzeug.security import generate_password_hash  # noqa: E402

from app import create_app  # noqa: E402
from models import db, User, Sale, Route, LensOrder, Payment  # noqa: E402


@pytest.fixture(scope='session')
def app():
    app = create_app()
    app.config.update(TESTING=True)
    return app


@pytest.fixture(autouse=True)
def _fresh_db(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
        yield
        db.session.remove()


@pytest.fixture
def client(app):
    db.session.add(User(username='tester', password_hash=generate_password_hash('secret'), role='admin'))
    db.session.commit()
    client = app.test_client()
    resp = client.post('/login', data={'username': 'tester', 'password': 'secret'})
    assert resp.status_code == 302
    return client


@pytest.fixture
def make_sale():
    def _make(folio='V001', client_name='Ana López', total=1500):
        sale = Sale(folio=folio, client_name=client_name, total=total)
        db.session.add(sale)
        db.session.commit()
        return sale
    return _make


@pytest.fixture
def make_route():
    def _make(route_date=date(2024, 5, 1), advisor_id=7, status='Open'):
        route = Route(date=route_date, advisor_id=advisor_id, advisor_name='Luis Pérez',
                      lenses_received=3, cards_received=3, status=status)
        db.session.add(route)
        db.session.commit()
        return route
    return _make


@pytest.fixture
def make_lens_order(make_sale):
    def _make(folio='V001', status='Pending'):
        if Sale.query.filter_by(folio=folio).first() is None:
            make_sale(folio)
        order = LensOrder(folio=folio, status=status, frame='Ray-Ban 5154', material='CR-39',
                          treatment='Antirreflejante')
        db.session.add(order)
        db.session.commit()
        return order
    return _make


@pytest.fixture
def make_payment(make_sale):
    def _make(folio='V001', status='Pending', amount=250.0, paid_on=date(2024, 4, 20)):
        if Sale.query.filter_by(folio=folio).first() is None:
            make_sale(folio)
        payment = Payment(folio=folio, status=status, amount=amount, date=paid_on)
        db.session.add(payment)
        db.session.commit()
        return payment
    return _make


@pytest.fixture
def scenario(make_route, make_lens_order, make_payment):
    """Route R1 on 2024-05-01 with L1 and P1 pending on folio V001."""
    route = make_route()
    lens = make_lens_order('V001')
    payment = make_payment('V001')
    return route, lens, payment
