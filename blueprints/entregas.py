"""
Deliveries module: delivery form, list and JSON API.
Every save goes through the reconciliation service as one transaction.
"""

import secrets

from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify
from flask_login import login_required
from models import db, Route, LensOrder, Payment, Delivery
from services.errors import ValidationError, StoreFailure
from services.reconciliation_service import save_delivery, delete_delivery
from utils.audit import log_action
from utils.eligibility import list_eligible_lens_orders, list_eligible_payments
from utils.form_rules import apply_field_change

# Module configuration
MODULE_CONFIG = {
    'name': 'Deliveries Module',
    'description': 'Route deliveries and their reconciliation',
    'url_prefix': '/entregas',
    'enabled': True
}

entregas_bp = Blueprint('entregas', __name__)

EMPTY_FORM = {
    'route_id': '',
    'status': 'NotDelivered',
    'lens_order_id': '',
    'payment_id': '',
    'payment_option': 'existing',
    'new_payment_folio': '',
    'new_payment_amount': '',
    'reason': '',
    'time': '',
    'request_token': '',
    'next_route': '',
}


def _form_choices(form_state, delivery=None):
    current_lens_id = delivery.lens_order_id if delivery else None
    current_payment_id = delivery.payment_id if delivery else None

    lens_orders = list_eligible_lens_orders(LensOrder.query.order_by(LensOrder.id.asc()).all(),
                                            current_lens_id)
    selected_lens = next((l for l in lens_orders if str(l.id) == str(form_state.get('lens_order_id'))), None)
    payments = list_eligible_payments(Payment.query.order_by(Payment.id.asc()).all(),
                                      selected_lens, current_payment_id)
    routes = Route.query.order_by(Route.date.desc()).all()
    return {
        'routes': [r for r in routes if r.status != 'Closed' or (delivery and r.id == delivery.route_id)],
        'lens_orders': lens_orders,
        'payments': payments,
        'selected_lens': selected_lens,
    }


def _render_form(form_state, delivery=None, status=200):
    return render_template('entregas/form.html',
                           form=form_state,
                           delivery=delivery,
                           **_form_choices(form_state, delivery)), status


def _redirect_after_save(form_state):
    if form_state.get('next_route'):
        return redirect(url_for('rutas.route_detail', route_id=form_state['next_route']))
    return redirect(url_for('entregas.deliveries_list'))


def _delivery_form_state(delivery):
    state = dict(EMPTY_FORM)
    state.update({
        'route_id': str(delivery.route_id),
        'status': delivery.status,
        'lens_order_id': str(delivery.lens_order_id or ''),
        'payment_id': str(delivery.payment_id or ''),
        'reason': delivery.reason or '',
        'time': delivery.time or '',
    })
    return state


# ==================== PAGES ====================

@entregas_bp.route('/')
@login_required
def deliveries_list():
    route_id = request.args.get('route_id', type=int)
    q = Delivery.query
    if route_id:
        q = q.filter_by(route_id=route_id)
    deliveries = q.order_by(Delivery.id.desc()).all()
    return render_template('entregas/list.html', deliveries=deliveries, route_id=route_id)


@entregas_bp.route('/new', methods=['GET', 'POST'])
@login_required
def new_delivery():
    if request.method == 'POST':
        form_state = dict(EMPTY_FORM, **request.form.to_dict())
        try:
            result = save_delivery(form_state)
        except ValidationError as e:
            flash(e.message, 'danger')
            return _render_form(form_state, status=400)
        except StoreFailure:
            flash('The delivery could not be saved. Please try again.', 'danger')
            return _render_form(form_state, status=500)

        if result.replayed:
            flash('This delivery was already saved', 'info')
        else:
            log_action('CREATE_DELIVERY', f'Delivery {result.delivery.id} on route {result.delivery.route_id}')
            flash('Delivery saved successfully', 'success')
        return _redirect_after_save(form_state)

    form_state = dict(EMPTY_FORM, request_token=secrets.token_hex(16))
    for key in ('route_id', 'lens_order_id', 'status'):
        if request.args.get(key):
            form_state[key] = request.args[key]
    if request.args.get('route_id'):
        form_state['next_route'] = request.args['route_id']
    return _render_form(form_state)


@entregas_bp.route('/edit/<int:delivery_id>', methods=['GET', 'POST'])
@login_required
def edit_delivery(delivery_id):
    delivery = Delivery.query.get_or_404(delivery_id)

    if request.method == 'POST':
        form_state = dict(EMPTY_FORM, **request.form.to_dict())
        try:
            save_delivery(form_state, delivery_id=delivery.id)
        except ValidationError as e:
            flash(e.message, 'danger')
            return _render_form(form_state, delivery, status=400)
        except StoreFailure:
            flash('The delivery could not be saved. Please try again.', 'danger')
            return _render_form(form_state, delivery, status=500)

        log_action('EDIT_DELIVERY', f'Edited delivery {delivery_id}')
        flash('Delivery updated', 'success')
        return _redirect_after_save(form_state)

    return _render_form(_delivery_form_state(delivery), delivery)


@entregas_bp.route('/delete/<int:delivery_id>', methods=['POST'])
@login_required
def delete_delivery_view(delivery_id):
    Delivery.query.get_or_404(delivery_id)
    try:
        delete_delivery(delivery_id)
    except StoreFailure:
        flash('The delivery could not be deleted. Please try again.', 'danger')
        return redirect(url_for('entregas.deliveries_list'))

    log_action('DELETE_DELIVERY', f'Deleted delivery {delivery_id}')
    flash('Delivery deleted successfully!', 'success')
    return redirect(url_for('entregas.deliveries_list'))


# ==================== API ====================

def _error_response(error):
    status = 500 if isinstance(error, StoreFailure) else 400
    return jsonify(error.to_dict()), status


@entregas_bp.route('/api/', methods=['GET'])
@login_required
def api_list_deliveries():
    deliveries = Delivery.query.order_by(Delivery.id.desc()).all()
    return jsonify([d.to_dict() for d in deliveries])


@entregas_bp.route('/api/<int:delivery_id>', methods=['GET'])
@login_required
def api_get_delivery(delivery_id):
    return jsonify(Delivery.query.get_or_404(delivery_id).to_dict())


@entregas_bp.route('/api/', methods=['POST'])
@login_required
def api_create_delivery():
    try:
        result = save_delivery(request.get_json(silent=True) or {})
    except (ValidationError, StoreFailure) as e:
        return _error_response(e)
    if not result.replayed:
        log_action('CREATE_DELIVERY', f'Delivery {result.delivery.id} on route {result.delivery.route_id}')
    return jsonify(result.to_dict()), 200 if result.replayed else 201


@entregas_bp.route('/api/<int:delivery_id>', methods=['PUT'])
@login_required
def api_update_delivery(delivery_id):
    Delivery.query.get_or_404(delivery_id)
    try:
        result = save_delivery(request.get_json(silent=True) or {}, delivery_id=delivery_id)
    except (ValidationError, StoreFailure) as e:
        return _error_response(e)
    log_action('EDIT_DELIVERY', f'Edited delivery {delivery_id}')
    return jsonify(result.to_dict())


@entregas_bp.route('/api/<int:delivery_id>', methods=['DELETE'])
@login_required
def api_delete_delivery(delivery_id):
    Delivery.query.get_or_404(delivery_id)
    try:
        reverted = delete_delivery(delivery_id)
    except StoreFailure as e:
        return _error_response(e)
    log_action('DELETE_DELIVERY', f'Deleted delivery {delivery_id}')
    return jsonify({'success': True, 'reverted': [u.to_dict() for u in reverted]})


@entregas_bp.route('/api/eligible', methods=['GET'])
@login_required
def api_eligible():
    """Selectable lens orders and payments for the current form state."""
    delivery = None
    if request.args.get('delivery_id', type=int):
        delivery = db.session.get(Delivery, request.args.get('delivery_id', type=int))
    choices = _form_choices({'lens_order_id': request.args.get('lens_order_id', '')}, delivery)
    return jsonify({
        'lens_orders': [l.to_dict() for l in choices['lens_orders']],
        'payments': [p.to_dict() for p in choices['payments']],
        'folio': choices['selected_lens'].folio if choices['selected_lens'] else None,
    })


@entregas_bp.route('/api/field_change', methods=['POST'])
@login_required
def api_field_change():
    payload = request.get_json(silent=True) or {}
    field = payload.get('field')
    if not field:
        return jsonify({'success': False, 'message': 'field is required'}), 400
    return jsonify({'success': True,
                    'form': apply_field_change(payload.get('form') or {}, field, payload.get('value'))})
