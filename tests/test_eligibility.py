from types import SimpleNamespace

from utils.eligibility import list_eligible_lens_orders, list_eligible_payments


def _lens(id, status, folio='V001'):
    return SimpleNamespace(id=id, status=status, folio=folio)


def _pay(id, status, folio='V001'):
    return SimpleNamespace(id=id, status=status, folio=folio)


ORDERS = [_lens(1, 'Pending'), _lens(2, 'NotDelivered', 'V002'), _lens(3, 'Delivered', 'V003')]
PAYMENTS = [_pay(10, 'Pending'), _pay(11, 'Paid'), _pay(12, 'Pending', 'V002'), _pay(13, 'Paid', 'V002')]


def test_lens_orders_pending_or_not_delivered():
    assert [o.id for o in list_eligible_lens_orders(ORDERS)] == [1, 2]


def test_attached_lens_order_stays_selectable():
    assert [o.id for o in list_eligible_lens_orders(ORDERS, current_lens_order_id=3)] == [1, 2, 3]
    # Form values arrive as strings.
    assert [o.id for o in list_eligible_lens_orders(ORDERS, current_lens_order_id='3')] == [1, 2, 3]


def test_pending_payments_only():
    assert [p.id for p in list_eligible_payments(PAYMENTS)] == [10, 12]


def test_payments_follow_selected_lens_folio():
    assert [p.id for p in list_eligible_payments(PAYMENTS, selected_lens_order=ORDERS[1])] == [12]


def test_attached_payment_stays_selectable_within_folio():
    eligible = list_eligible_payments(PAYMENTS, selected_lens_order=ORDERS[1], current_payment_id=13)
    assert [p.id for p in eligible] == [12, 13]
    eligible = list_eligible_payments(PAYMENTS, selected_lens_order=ORDERS[1], current_payment_id=11)
    assert [p.id for p in eligible] == [12]


def test_no_matching_folio_leaves_nothing():
    assert list_eligible_payments(PAYMENTS, selected_lens_order=ORDERS[2]) == []


def test_empty_current_id_is_ignored():
    assert [o.id for o in list_eligible_lens_orders(ORDERS, current_lens_order_id='')] == [1, 2]
