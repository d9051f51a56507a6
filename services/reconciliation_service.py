"""Delivery reconciliation.

Exposes:
- reconcile(prior_delivery, desired) -> ReconciliationResult
- save_delivery(form_state, delivery_id=None) -> ReconciliationResult
- delete_delivery(delivery_id)

Saving a delivery settles at most one lens order and at most one payment,
reverts whatever an edited delivery used to point at, and bumps the route
tallies when the delivery is new. Every input is validated before the first
write and all writes share one transaction on ``db.session``.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from models import db, Sale
from services.errors import (
    FolioMismatch,
    InvalidAssociation,
    MissingRequiredField,
    StoreFailure,
    ValidationError,
)
from services.status_machine import (
    DeliveryOutcome,
    EntityUpdate,
    LensStatus,
    PaymentStatus,
    apply_delivery_outcome,
    parse_outcome,
    revert_to_pending,
)
from services.stores import DeliveryStore, LensOrderStore, PaymentStore, RouteStore

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 5
TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

ELIGIBLE_LENS_STATUSES = {LensStatus.PENDING.value, LensStatus.NOT_DELIVERED.value}
ELIGIBLE_PAYMENT_STATUSES = {PaymentStatus.PENDING.value}


# =============================================================================
# Input & result structures
# =============================================================================

def _parse_text(value, field_name):
    """Trimmed text from a form or JSON value; anything but a string is rejected."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text", field=field_name)
    return value.strip()


def _parse_id(value, field_name):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name)


@dataclass
class NewPayment:
    folio: str
    amount: float = 0.0


@dataclass
class DeliveryInput:
    """Desired state of a delivery as submitted by the form."""
    route_id: Optional[int]
    status: str
    reason: str = ''
    lens_order_id: Optional[int] = None
    payment_id: Optional[int] = None
    new_payment: Optional[NewPayment] = None
    time: Optional[str] = None
    request_token: Optional[str] = None

    @classmethod
    def from_form(cls, form_state):
        """Build an input from a flat form dict or a JSON body.

        A new payment is requested either with ``payment_option == 'new'``
        plus ``new_payment_folio`` / ``new_payment_amount``, or with a nested
        ``new_payment`` object.
        """
        if not isinstance(form_state, Mapping):
            raise ValidationError('Delivery data must be an object', field='body')
        new_payment = None
        nested = form_state.get('new_payment')
        if isinstance(nested, dict):
            new_payment = cls._parse_new_payment(nested.get('folio'), nested.get('amount'))
        elif form_state.get('payment_option') == 'new':
            new_payment = cls._parse_new_payment(form_state.get('new_payment_folio'),
                                                 form_state.get('new_payment_amount'))

        return cls(
            route_id=_parse_id(form_state.get('route_id'), 'route_id'),
            status=_parse_text(form_state.get('status'), 'status'),
            reason=_parse_text(form_state.get('reason'), 'reason'),
            lens_order_id=_parse_id(form_state.get('lens_order_id'), 'lens_order_id'),
            payment_id=_parse_id(form_state.get('payment_id'), 'payment_id'),
            new_payment=new_payment,
            time=_parse_text(form_state.get('time'), 'time') or None,
            request_token=_parse_text(form_state.get('request_token'), 'request_token') or None,
        )

    @staticmethod
    def _parse_new_payment(folio, amount):
        folio = _parse_text(folio, 'new_payment_folio')
        if not folio:
            raise MissingRequiredField('A folio is required for the new payment', field='new_payment_folio')
        try:
            amount = float(amount or 0)
        except (TypeError, ValueError):
            raise ValidationError('Payment amount must be a number', field='new_payment_amount')
        if not math.isfinite(amount):
            raise ValidationError('Payment amount must be a finite number', field='new_payment_amount')
        if amount < 0:
            raise ValidationError('Payment amount cannot be negative', field='new_payment_amount')
        return NewPayment(folio=folio, amount=amount)


@dataclass
class ReconciliationResult:
    delivery: object
    lens_order_update: Optional[EntityUpdate] = None
    payment_update: Optional[EntityUpdate] = None
    route_update: Dict[str, int] = field(default_factory=dict)
    reverted: List[EntityUpdate] = field(default_factory=list)
    created: bool = True
    replayed: bool = False

    def to_dict(self):
        return {
            'success': True,
            'delivery': self.delivery.to_dict(),
            'lens_order_update': self.lens_order_update.to_dict() if self.lens_order_update else None,
            'payment_update': self.payment_update.to_dict() if self.payment_update else None,
            'route_update': self.route_update,
            'reverted': [u.to_dict() for u in self.reverted],
            'created': self.created,
            'replayed': self.replayed,
        }


def route_counter_deltas(outcome, has_lens_order, has_payment):
    """Route tallies a brand-new delivery adds, as {column: delta}."""
    delivered = parse_outcome(outcome) == DeliveryOutcome.DELIVERED
    deltas = {}
    if has_lens_order:
        deltas['lenses_delivered' if delivered else 'lenses_not_delivered'] = 1
    if has_payment:
        deltas['cards_delivered' if delivered else 'cards_not_delivered'] = 1
    return deltas


# =============================================================================
# Engine
# =============================================================================

class DeliveryReconciler:

    def __init__(self, session=None, min_reason_length=MIN_REASON_LENGTH):
        self.session = session or db.session
        self.routes = RouteStore(self.session)
        self.lens_orders = LensOrderStore(self.session)
        self.payments = PaymentStore(self.session)
        self.deliveries = DeliveryStore(self.session)
        self.min_reason_length = min_reason_length

    # ---- validation -------------------------------------------------------

    def _validate(self, prior, desired):
        if desired.route_id is None:
            raise MissingRequiredField('Route is required', field='route_id')
        route = self.routes.get(desired.route_id)
        if route is None:
            raise MissingRequiredField(f"Route {desired.route_id} does not exist", field='route_id')
        # Edits that stay on their own route are still allowed after closing.
        moving = prior is None or prior.route_id != route.id
        if moving and route.status == 'Closed':
            raise ValidationError(f"Route {route.id} is closed", field='route_id')

        if not desired.status:
            raise MissingRequiredField('Status is required', field='status')
        outcome = parse_outcome(desired.status)

        if desired.reason is not None and not isinstance(desired.reason, str):
            raise ValidationError('reason must be text', field='reason')
        if len((desired.reason or '').strip()) < self.min_reason_length:
            raise ValidationError(
                f"Reason must be at least {self.min_reason_length} characters", field='reason')

        if desired.time and not TIME_RE.match(desired.time):
            raise ValidationError('Time must use the HH:MM format', field='time')

        if desired.payment_id is not None and desired.new_payment is not None:
            raise ValidationError('Choose an existing payment or a new one, not both', field='payment_id')

        if desired.lens_order_id is None and desired.payment_id is None and desired.new_payment is None:
            raise MissingRequiredField('Select at least a lens order or a payment', field='lens_order_id')

        prior_lens_id = prior.lens_order_id if prior is not None else None
        prior_payment_id = prior.payment_id if prior is not None else None

        lens_order = None
        if desired.lens_order_id is not None:
            lens_order = self.lens_orders.get(desired.lens_order_id)
            if lens_order is None:
                raise InvalidAssociation(f"Lens order {desired.lens_order_id} does not exist",
                                         field='lens_order_id')
            if lens_order.id != prior_lens_id and lens_order.status not in ELIGIBLE_LENS_STATUSES:
                raise InvalidAssociation(
                    f"Lens order {lens_order.id} is {lens_order.status} and cannot be delivered",
                    field='lens_order_id')

        payment = None
        if desired.payment_id is not None:
            payment = self.payments.get(desired.payment_id)
            if payment is None:
                raise InvalidAssociation(f"Payment {desired.payment_id} does not exist", field='payment_id')
            if payment.id != prior_payment_id and payment.status not in ELIGIBLE_PAYMENT_STATUSES:
                raise InvalidAssociation(
                    f"Payment {payment.id} is {payment.status} and cannot be collected",
                    field='payment_id')

        payment_folio = None
        if payment is not None:
            payment_folio = payment.folio
        elif desired.new_payment is not None:
            payment_folio = desired.new_payment.folio
            if self.session.query(Sale).filter_by(folio=payment_folio).first() is None:
                raise InvalidAssociation(f"Sale {payment_folio} does not exist", field='new_payment_folio')

        if lens_order is not None and payment_folio is not None and lens_order.folio != payment_folio:
            raise FolioMismatch(
                f"Lens order folio {lens_order.folio} does not match payment folio {payment_folio}",
                field='payment_id')

        return route, outcome, lens_order, payment

    # ---- apply ------------------------------------------------------------

    def reconcile(self, prior, desired):
        if prior is None and desired.request_token:
            existing = self.deliveries.find_by_token(desired.request_token)
            if existing is not None:
                logger.info("Delivery %s replayed for token %s", existing.id, desired.request_token)
                return ReconciliationResult(delivery=existing, created=False, replayed=True)

        try:
            route, outcome, lens_order, payment = self._validate(prior, desired)
        except ValidationError as e:
            logger.warning("Delivery rejected (%s on %s): %s", e.kind, e.field, e.message)
            raise

        result = ReconciliationResult(delivery=None, created=prior is None)
        prior_lens_id = prior.lens_order_id if prior is not None else None
        prior_payment_id = prior.payment_id if prior is not None else None

        try:
            if prior_lens_id is not None and prior_lens_id != desired.lens_order_id:
                result.reverted.append(self._revert(self.lens_orders, prior_lens_id))
            if prior_payment_id is not None and prior_payment_id != desired.payment_id:
                result.reverted.append(self._revert(self.payments, prior_payment_id))

            if desired.new_payment is not None:
                payment = self.payments.create(
                    folio=desired.new_payment.folio,
                    amount=desired.new_payment.amount,
                    date=route.date,
                    status=PaymentStatus.PENDING.value,
                )

            fields = {
                'route_id': route.id,
                'lens_order_id': lens_order.id if lens_order is not None else None,
                'payment_id': payment.id if payment is not None else None,
                'status': outcome.value,
                'reason': (desired.reason or '').strip(),
                'time': desired.time or datetime.now().strftime('%H:%M'),
            }
            if prior is None:
                result.delivery = self.deliveries.create(request_token=desired.request_token, **fields)
            else:
                result.delivery = self.deliveries.update(prior.id, **fields)

            if lens_order is not None:
                update = apply_delivery_outcome(lens_order, outcome)
                self.lens_orders.update(lens_order.id, status=update.new_status)
                result.lens_order_update = update

            if payment is not None:
                update = apply_delivery_outcome(payment, outcome)
                self.payments.update(payment.id, status=update.new_status, date=route.date)
                update.changes['date'] = route.date.isoformat()
                result.payment_update = update

            # TODO: decide between recomputing and delta-adjusting tallies on edit;
            # edits currently leave route counters as they were.
            if prior is None:
                deltas = route_counter_deltas(outcome, lens_order is not None, payment is not None)
                if deltas:
                    self.routes.increment(route.id, deltas)
                result.route_update = deltas

            self.session.commit()
        except ValidationError:
            self.session.rollback()
            raise
        except (SQLAlchemyError, LookupError) as e:
            self.session.rollback()
            logger.exception("Delivery save failed on route %s", desired.route_id)
            raise StoreFailure(f"Could not save the delivery: {e}") from e

        logger.info("Delivery %s %s on route %s as %s (lens=%s, payment=%s, reverted=%s)",
                    result.delivery.id, 'created' if result.created else 'updated', route.id,
                    outcome.value, result.delivery.lens_order_id, result.delivery.payment_id,
                    result.reverted)
        return result

    def _revert(self, store, entity_id):
        entity = store.get(entity_id)
        if entity is None:
            raise LookupError(f"Previously attached record {entity_id} is gone")
        update = revert_to_pending(entity)
        store.update(entity_id, status=update.new_status)
        return update

    def delete(self, delivery):
        """Remove a delivery and release its lens order and payment.

        Route tallies are left as they are, same as on edit.
        """
        reverted = []
        try:
            if delivery.lens_order_id is not None:
                reverted.append(self._revert(self.lens_orders, delivery.lens_order_id))
            if delivery.payment_id is not None:
                reverted.append(self._revert(self.payments, delivery.payment_id))
            self.deliveries.delete(delivery.id)
            self.session.commit()
        except (SQLAlchemyError, LookupError) as e:
            self.session.rollback()
            logger.exception("Delivery %s delete failed", delivery.id)
            raise StoreFailure(f"Could not delete the delivery: {e}") from e
        logger.info("Delivery %s deleted, reverted %s", delivery.id, reverted)
        return reverted


# =============================================================================
# Entry points used by the web layer
# =============================================================================

def _reconciler():
    min_len = MIN_REASON_LENGTH
    if has_app_context():
        min_len = current_app.config.get('MIN_REASON_LENGTH', MIN_REASON_LENGTH)
    return DeliveryReconciler(min_reason_length=min_len)


def reconcile(prior_delivery, desired):
    return _reconciler().reconcile(prior_delivery, desired)


def save_delivery(form_state, delivery_id=None):
    """Turn a submitted delivery form into one reconciliation."""
    prior = None
    if delivery_id is not None:
        prior = DeliveryStore().get(delivery_id)
        if prior is None:
            raise ValidationError(f"Delivery {delivery_id} does not exist", field='id')
    return reconcile(prior, DeliveryInput.from_form(form_state))


def delete_delivery(delivery_id):
    delivery = DeliveryStore().get(delivery_id)
    if delivery is None:
        raise ValidationError(f"Delivery {delivery_id} does not exist", field='id')
    return _reconciler().delete(delivery)
