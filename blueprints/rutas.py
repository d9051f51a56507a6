import io
from datetime import datetime, date

import pandas as pd
from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify, send_file, Response
from flask_login import login_required
from models import db, Route, Delivery
from services.reconciliation_service import TIME_RE
from utils.audit import log_action

# Module configuration
MODULE_CONFIG = {
    'name': 'Routes Module',
    'description': 'Advisor delivery routes and their tallies',
    'url_prefix': '/rutas',
    'enabled': True
}

rutas_bp = Blueprint('rutas', __name__)


class RouteFormError(ValueError):
    pass


def _to_int(value, label):
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        raise RouteFormError(f'{label} must be a whole number')
    if number < 0:
        raise RouteFormError(f'{label} cannot be negative')
    return number


def build_route(data):
    """Create a Route from form/JSON data; raises RouteFormError on bad input."""
    raw_date = str(data.get('date') or '').strip()
    if not raw_date:
        raise RouteFormError('Date is required')
    try:
        route_date = datetime.strptime(raw_date, '%Y-%m-%d').date()
    except ValueError:
        raise RouteFormError('Date must use the YYYY-MM-DD format')

    if not data.get('advisor_id'):
        raise RouteFormError('Advisor is required')

    return Route(date=route_date,
                 advisor_id=_to_int(data.get('advisor_id'), 'Advisor'),
                 advisor_name=(data.get('advisor_name') or '').strip(),
                 lenses_received=_to_int(data.get('lenses_received'), 'Lenses received'),
                 cards_received=_to_int(data.get('cards_received'), 'Cards received'),
                 start_time=(data.get('start_time') or '').strip() or None,
                 status='Open')


def route_sheet(route):
    """One row per delivery, in the order they were registered."""
    rows = []
    for d in route.deliveries:
        rows.append({
            'Delivery': d.id,
            'Time': d.time or '',
            'Folio': d.folio or '',
            'Lens Order': d.lens_order_id or '',
            'Payment': d.payment_id or '',
            'Amount': d.payment.amount if d.payment else 0,
            'Status': d.status,
            'Reason': d.reason or '',
        })
    return pd.DataFrame(rows, columns=['Delivery', 'Time', 'Folio', 'Lens Order', 'Payment',
                                       'Amount', 'Status', 'Reason'])


# ==================== PAGES ====================

@rutas_bp.route('/')
@login_required
def routes_list():
    routes = Route.query.order_by(Route.date.desc(), Route.id.desc()).all()
    return render_template('rutas/list.html', routes=routes, today=date.today().isoformat())


@rutas_bp.route('/add', methods=['POST'])
@login_required
def add_route():
    try:
        route = build_route(request.form)
    except RouteFormError as e:
        flash(str(e), 'danger')
        return redirect(url_for('rutas.routes_list'))

    db.session.add(route)
    db.session.commit()
    log_action('CREATE_ROUTE', f'Route {route.id} for advisor {route.advisor_id} on {route.date}')
    flash('Route created successfully', 'success')
    return redirect(url_for('rutas.route_detail', route_id=route.id))


@rutas_bp.route('/<int:route_id>')
@login_required
def route_detail(route_id):
    route = Route.query.get_or_404(route_id)
    return render_template('rutas/detail.html', route=route)


@rutas_bp.route('/<int:route_id>/close', methods=['POST'])
@login_required
def close_route(route_id):
    route = Route.query.get_or_404(route_id)
    if route.status == 'Closed':
        flash('Route is already closed', 'warning')
        return redirect(url_for('rutas.route_detail', route_id=route.id))

    end_time = (request.form.get('end_time') or '').strip() or datetime.now().strftime('%H:%M')
    if not TIME_RE.match(end_time):
        flash('End time must use the HH:MM format', 'danger')
        return redirect(url_for('rutas.route_detail', route_id=route.id))

    route.status = 'Closed'
    route.end_time = end_time
    db.session.commit()
    log_action('CLOSE_ROUTE', f'Closed route {route.id} at {route.end_time}')
    flash('Route closed', 'success')
    return redirect(url_for('rutas.route_detail', route_id=route.id))


@rutas_bp.route('/<int:route_id>/export')
@login_required
def export_route(route_id):
    route = Route.query.get_or_404(route_id)
    fmt = request.args.get('format', 'csv')
    df = route_sheet(route)
    filename = f"route_{route.id}_{route.date.isoformat()}"

    if fmt == 'excel':
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Deliveries')
        output.seek(0)
        return send_file(output, as_attachment=True, download_name=f"{filename}.xlsx")

    elif fmt == 'csv':
        return Response(df.to_csv(index=False), mimetype="text/csv",
                        headers={"Content-disposition": f"attachment; filename={filename}.csv"})

    flash(f'Unknown export format: {fmt}', 'warning')
    return redirect(url_for('rutas.route_detail', route_id=route.id))


# ==================== API ====================

@rutas_bp.route('/api/', methods=['GET'])
@login_required
def api_list_routes():
    routes = Route.query.order_by(Route.date.desc(), Route.id.desc()).all()
    return jsonify([r.to_dict() for r in routes])


@rutas_bp.route('/api/', methods=['POST'])
@login_required
def api_create_route():
    try:
        route = build_route(request.get_json(silent=True) or {})
    except RouteFormError as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    db.session.add(route)
    db.session.commit()
    log_action('CREATE_ROUTE', f'Route {route.id} for advisor {route.advisor_id} on {route.date}')
    return jsonify(route.to_dict()), 201


@rutas_bp.route('/api/<int:route_id>', methods=['GET'])
@login_required
def api_get_route(route_id):
    route = Route.query.get_or_404(route_id)
    data = route.to_dict()
    data['deliveries'] = [d.to_dict() for d in Delivery.query.filter_by(route_id=route.id).order_by(Delivery.id).all()]
    return jsonify(data)
