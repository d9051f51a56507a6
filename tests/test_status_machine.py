import pytest

from models import LensOrder, Payment, Route
from services.errors import ValidationError
from services.status_machine import (
    DeliveryOutcome,
    LensStatus,
    PaymentStatus,
    apply_delivery_outcome,
    revert_to_pending,
    transition,
)


@pytest.mark.parametrize('start', ['Pending', 'NotDelivered', 'Delivered'])
@pytest.mark.parametrize('outcome, expected', [
    ('Delivered', 'Delivered'),
    ('NotDelivered', 'NotDelivered'),
])
def test_lens_order_follows_outcome(start, outcome, expected):
    update = apply_delivery_outcome(LensOrder(id=1, status=start), outcome)
    assert update.kind == 'lens_order'
    assert update.old_status == start
    assert update.new_status == expected


@pytest.mark.parametrize('start', ['Pending', 'Paid'])
def test_payment_is_paid_only_when_delivered(start):
    payment = Payment(id=3, status=start)
    assert apply_delivery_outcome(payment, DeliveryOutcome.DELIVERED).new_status == 'Paid'
    assert apply_delivery_outcome(payment, DeliveryOutcome.NOT_DELIVERED).new_status == 'Pending'


def test_transition_does_not_touch_the_entity():
    order = LensOrder(id=1, status='Pending')
    apply_delivery_outcome(order, 'Delivered')
    assert order.status == 'Pending'


def test_revert_goes_back_to_pending():
    assert revert_to_pending(LensOrder(id=1, status='Delivered')).new_status == LensStatus.PENDING.value
    assert revert_to_pending(Payment(id=2, status='Paid')).new_status == PaymentStatus.PENDING.value


def test_missing_status_counts_as_pending():
    assert apply_delivery_outcome(LensOrder(id=1), 'Delivered').old_status == 'Pending'


def test_unknown_stored_status_is_rejected():
    with pytest.raises(ValidationError):
        apply_delivery_outcome(LensOrder(id=1, status='Lost'), 'Delivered')


def test_unknown_outcome_is_rejected():
    with pytest.raises(ValidationError) as exc:
        apply_delivery_outcome(LensOrder(id=1, status='Pending'), 'Entregado')
    assert exc.value.field == 'status'


def test_unknown_event_is_rejected():
    with pytest.raises(ValidationError):
        transition(Payment(id=1, status='Pending'), 'lose')


def test_only_lens_orders_and_payments_have_a_machine():
    with pytest.raises(TypeError):
        revert_to_pending(Route(id=1))
