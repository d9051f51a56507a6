from flask import Blueprint, render_template, request, jsonify
from flask_login import login_required
from models import LensOrder

# Module configuration
MODULE_CONFIG = {
    'name': 'Lens Orders Module',
    'description': 'Lens manufacturing orders awaiting delivery',
    'url_prefix': '/lentes',
    'enabled': True
}

lentes_bp = Blueprint('lentes', __name__)


def _pending_query():
    return LensOrder.query.filter(LensOrder.status.in_(['Pending', 'NotDelivered']))


@lentes_bp.route('/')
@login_required
def lens_orders_list():
    status = request.args.get('status', '').strip()
    q = LensOrder.query
    if status:
        q = q.filter_by(status=status)
    orders = q.order_by(LensOrder.id.desc()).all()
    return render_template('lentes/list.html', orders=orders, status_filter=status)


@lentes_bp.route('/api/', methods=['GET'])
@login_required
def api_list_lens_orders():
    return jsonify([o.to_dict() for o in LensOrder.query.order_by(LensOrder.id.asc()).all()])


@lentes_bp.route('/api/pending', methods=['GET'])
@login_required
def api_pending_lens_orders():
    """Lens orders that can still go out on a route."""
    return jsonify([o.to_dict() for o in _pending_query().order_by(LensOrder.id.asc()).all()])
