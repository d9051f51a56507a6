"""
Store contracts used by the reconciliation engine.

Each store wraps one model on the shared ``db.session``. Stores flush so
generated ids are available, but never commit: the caller owns the
transaction boundary.
"""
from models import db, Route, LensOrder, Payment, Delivery


class ModelStore:
    model = None

    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, entity_id):
        if entity_id is None:
            return None
        return self.session.get(self.model, int(entity_id))

    def list_all(self):
        return self.session.query(self.model).order_by(self.model.id.asc()).all()

    def create(self, **fields):
        obj = self.model(**fields)
        self.session.add(obj)
        self.session.flush()
        return obj

    def update(self, entity_id, **fields):
        obj = self.get(entity_id)
        if obj is None:
            raise LookupError(f"{self.model.__name__} {entity_id} not found")
        for name, value in fields.items():
            setattr(obj, name, value)
        self.session.flush()
        return obj


class RouteStore(ModelStore):
    model = Route

    def increment(self, entity_id, counters):
        """Add ``counters`` ({column: delta}) to the route's tallies."""
        route = self.get(entity_id)
        if route is None:
            raise LookupError(f"Route {entity_id} not found")
        fields = {name: (getattr(route, name) or 0) + delta for name, delta in counters.items()}
        return self.update(entity_id, **fields)


class LensOrderStore(ModelStore):
    model = LensOrder


class PaymentStore(ModelStore):
    model = Payment


class DeliveryStore(ModelStore):
    model = Delivery

    def find_by_token(self, token):
        if not token:
            return None
        return self.session.query(Delivery).filter_by(request_token=token).first()

    def delete(self, entity_id):
        obj = self.get(entity_id)
        if obj is not None:
            self.session.delete(obj)
            self.session.flush()
        return obj
