"""Delivery status machines for lens orders and payments.

A delivery outcome is turned into an event (``deliver``, ``fail``) and the
event is looked up in a per-entity transition table. Detaching an entity
from a delivery is the ``revert`` event.
"""

from enum import Enum

from models import LensOrder, Payment
from services.errors import ValidationError


class DeliveryOutcome(str, Enum):
    DELIVERED = 'Delivered'
    NOT_DELIVERED = 'NotDelivered'


class LensStatus(str, Enum):
    PENDING = 'Pending'
    NOT_DELIVERED = 'NotDelivered'
    DELIVERED = 'Delivered'


class PaymentStatus(str, Enum):
    PENDING = 'Pending'
    PAID = 'Paid'


DELIVER = 'deliver'
FAIL = 'fail'
REVERT = 'revert'

OUTCOME_EVENTS = {
    DeliveryOutcome.DELIVERED: DELIVER,
    DeliveryOutcome.NOT_DELIVERED: FAIL,
}

LENS_TRANSITIONS = {
    (LensStatus.PENDING, DELIVER): LensStatus.DELIVERED,
    (LensStatus.PENDING, FAIL): LensStatus.NOT_DELIVERED,
    (LensStatus.PENDING, REVERT): LensStatus.PENDING,
    (LensStatus.NOT_DELIVERED, DELIVER): LensStatus.DELIVERED,
    (LensStatus.NOT_DELIVERED, FAIL): LensStatus.NOT_DELIVERED,
    (LensStatus.NOT_DELIVERED, REVERT): LensStatus.PENDING,
    # Only reachable when an already settled delivery is edited.
    (LensStatus.DELIVERED, DELIVER): LensStatus.DELIVERED,
    (LensStatus.DELIVERED, FAIL): LensStatus.NOT_DELIVERED,
    (LensStatus.DELIVERED, REVERT): LensStatus.PENDING,
}

PAYMENT_TRANSITIONS = {
    (PaymentStatus.PENDING, DELIVER): PaymentStatus.PAID,
    (PaymentStatus.PENDING, FAIL): PaymentStatus.PENDING,
    (PaymentStatus.PENDING, REVERT): PaymentStatus.PENDING,
    (PaymentStatus.PAID, DELIVER): PaymentStatus.PAID,
    (PaymentStatus.PAID, FAIL): PaymentStatus.PENDING,
    (PaymentStatus.PAID, REVERT): PaymentStatus.PENDING,
}


class EntityUpdate:
    """Status change applied to one lens order or payment."""

    def __init__(self, kind, entity_id, old_status, new_status, changes=None):
        self.kind = kind
        self.entity_id = entity_id
        self.old_status = old_status
        self.new_status = new_status
        self.changes = changes or {}

    def to_dict(self):
        data = {
            'kind': self.kind,
            'id': self.entity_id,
            'old_status': self.old_status,
            'new_status': self.new_status,
        }
        data.update(self.changes)
        return data

    def __repr__(self):
        return f"<EntityUpdate {self.kind}#{self.entity_id} {self.old_status}->{self.new_status}>"


def parse_outcome(value):
    try:
        return DeliveryOutcome(value)
    except ValueError:
        raise ValidationError(f"Invalid delivery status: {value!r}", field='status')


def _machine_for(entity):
    if isinstance(entity, LensOrder):
        return 'lens_order', LensStatus, LENS_TRANSITIONS
    if isinstance(entity, Payment):
        return 'payment', PaymentStatus, PAYMENT_TRANSITIONS
    raise TypeError(f"No delivery status machine for {type(entity).__name__}")


def transition(entity, event):
    """Work out the EntityUpdate for firing ``event`` on ``entity``.

    The entity itself is left untouched; callers persist ``new_status``
    through the matching store.
    """
    kind, states, table = _machine_for(entity)
    try:
        current = states(entity.status or states.PENDING.value)
    except ValueError:
        raise ValidationError(f"{kind} {entity.id} has unknown status {entity.status!r}", field=f"{kind}_id")

    new_state = table.get((current, event))
    if new_state is None:
        raise ValidationError(f"Cannot {event} {kind} {entity.id} from {current.value}", field=f"{kind}_id")

    return EntityUpdate(kind, entity.id, current.value, new_state.value)


def apply_delivery_outcome(entity, outcome):
    return transition(entity, OUTCOME_EVENTS[parse_outcome(outcome)])


def revert_to_pending(entity):
    return transition(entity, REVERT)
