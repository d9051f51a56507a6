from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

db = SQLAlchemy()


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(200))
    role = db.Column(db.String(20), default='asesor')  # 'admin', 'asesor', 'optometrista'


class Sale(db.Model):
    """Sales contract; owns its lens orders and payments through the folio."""
    id = db.Column(db.Integer, primary_key=True)
    folio = db.Column(db.String(30), unique=True, nullable=False)
    client_name = db.Column(db.String(150))
    total = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=datetime.now)

    lens_orders = db.relationship('LensOrder', backref='sale', lazy=True)
    payments = db.relationship('Payment', backref='sale', lazy=True)


class LensOrder(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    folio = db.Column(db.String(30), db.ForeignKey('sale.folio'), nullable=False)
    status = db.Column(db.String(20), default='Pending')  # 'Pending', 'NotDelivered', 'Delivered'
    frame = db.Column(db.String(100))
    material = db.Column(db.String(50))
    treatment = db.Column(db.String(50))
    lens_type = db.Column(db.String(50))
    tint = db.Column(db.String(50))
    od_sph = db.Column(db.String(10))
    od_cyl = db.Column(db.String(10))
    od_axis = db.Column(db.String(10))
    od_add = db.Column(db.String(10))
    oi_sph = db.Column(db.String(10))
    oi_cyl = db.Column(db.String(10))
    oi_axis = db.Column(db.String(10))
    oi_add = db.Column(db.String(10))
    delivery_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'folio': self.folio,
            'status': self.status,
            'frame': self.frame,
            'material': self.material,
            'treatment': self.treatment,
        }


class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    folio = db.Column(db.String(30), db.ForeignKey('sale.folio'), nullable=False)
    amount = db.Column(db.Float, default=0)
    date = db.Column(db.Date)
    status = db.Column(db.String(20), default='Pending')  # 'Pending', 'Paid'

    def to_dict(self):
        return {
            'id': self.id,
            'folio': self.folio,
            'amount': self.amount,
            'date': self.date.isoformat() if self.date else None,
            'status': self.status,
        }


class Route(db.Model):
    """One advisor's delivery run for one day."""
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)
    advisor_id = db.Column(db.Integer, nullable=False)
    advisor_name = db.Column(db.String(100))
    lenses_received = db.Column(db.Integer, default=0)
    cards_received = db.Column(db.Integer, default=0)
    lenses_delivered = db.Column(db.Integer, default=0)
    lenses_not_delivered = db.Column(db.Integer, default=0)
    cards_delivered = db.Column(db.Integer, default=0)
    cards_not_delivered = db.Column(db.Integer, default=0)
    start_time = db.Column(db.String(5))
    end_time = db.Column(db.String(5))
    status = db.Column(db.String(20), default='Open')  # 'Open' or 'Closed'

    deliveries = db.relationship('Delivery', backref='route', lazy=True,
                                 order_by='Delivery.id')

    def counters(self):
        return {
            'lenses_received': self.lenses_received or 0,
            'cards_received': self.cards_received or 0,
            'lenses_delivered': self.lenses_delivered or 0,
            'lenses_not_delivered': self.lenses_not_delivered or 0,
            'cards_delivered': self.cards_delivered or 0,
            'cards_not_delivered': self.cards_not_delivered or 0,
        }

    def to_dict(self):
        data = {
            'id': self.id,
            'date': self.date.isoformat() if self.date else None,
            'advisor_id': self.advisor_id,
            'advisor_name': self.advisor_name,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'status': self.status,
        }
        data.update(self.counters())
        return data


class Delivery(db.Model):
    """Attempt to hand over a lens order and/or collect a payment on a route."""
    id = db.Column(db.Integer, primary_key=True)
    route_id = db.Column(db.Integer, db.ForeignKey('route.id'), nullable=False)
    lens_order_id = db.Column(db.Integer, db.ForeignKey('lens_order.id'), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payment.id'), nullable=True)
    status = db.Column(db.String(20), default='NotDelivered')  # 'NotDelivered' or 'Delivered'
    reason = db.Column(db.String(255))
    time = db.Column(db.String(5))
    request_token = db.Column(db.String(64), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    lens_order = db.relationship('LensOrder', lazy=True)
    payment = db.relationship('Payment', lazy=True)

    @property
    def folio(self):
        if self.lens_order is not None:
            return self.lens_order.folio
        if self.payment is not None:
            return self.payment.folio
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'route_id': self.route_id,
            'route_date': self.route.date.isoformat() if self.route and self.route.date else None,
            'lens_order_id': self.lens_order_id,
            'payment_id': self.payment_id,
            'status': self.status,
            'reason': self.reason,
            'time': self.time,
            'folio': self.folio,
        }
