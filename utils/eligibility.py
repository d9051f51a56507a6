"""
Selectable lens orders and payments for the delivery form.
Pure helpers: the reconciliation engine validates again on save.
"""


def _same_id(a, b):
    if a is None or b is None or a == '' or b == '':
        return False
    return str(a) == str(b)


def list_eligible_lens_orders(all_orders, current_lens_order_id=None):
    """Lens orders still pending or not delivered, plus the one being edited."""
    return [
        order for order in all_orders
        if order.status in ('Pending', 'NotDelivered') or _same_id(order.id, current_lens_order_id)
    ]


def list_eligible_payments(all_payments, selected_lens_order=None, current_payment_id=None):
    """Pending payments plus the one being edited, narrowed to the lens order's folio."""
    eligible = [
        payment for payment in all_payments
        if payment.status == 'Pending' or _same_id(payment.id, current_payment_id)
    ]
    if selected_lens_order is not None:
        eligible = [p for p in eligible if p.folio == selected_lens_order.folio]
    return eligible
