from flask import Blueprint, render_template, request, jsonify
from flask_login import login_required
from models import Payment

# Module configuration
MODULE_CONFIG = {
    'name': 'Payments Module',
    'description': 'Sale payments collected on routes',
    'url_prefix': '/pagos',
    'enabled': True
}

pagos_bp = Blueprint('pagos', __name__)


@pagos_bp.route('/')
@login_required
def payments_list():
    folio = request.args.get('folio', '').strip()
    q = Payment.query
    if folio:
        q = q.filter_by(folio=folio)
    payments = q.order_by(Payment.id.desc()).all()
    return render_template('pagos/list.html', payments=payments, folio_filter=folio)


@pagos_bp.route('/api/', methods=['GET'])
@login_required
def api_list_payments():
    return jsonify([p.to_dict() for p in Payment.query.order_by(Payment.id.asc()).all()])


@pagos_bp.route('/api/pending', methods=['GET'])
@login_required
def api_pending_payments():
    payments = Payment.query.filter_by(status='Pending').order_by(Payment.id.asc()).all()
    return jsonify([p.to_dict() for p in payments])
