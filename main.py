import os
import secrets
import logging
from flask import Flask, render_template, request, redirect, url_for, flash
from flask_login import LoginManager, login_user, login_required, logout_user, current_user
from werkzeug.security import check_password_hash
from datetime import date
from sqlalchemy import text
from models import db, User, Route, LensOrder, Payment, Delivery

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024

# Use environment variable for secret key or generate a secure one
app.secret_key = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

basedir = os.path.abspath(os.path.dirname(__file__))
db_path = os.path.join(basedir, 'instance', 'optica.db')

if not os.environ.get('DATABASE_URL') and not os.path.exists(os.path.join(basedir, 'instance')):
    os.makedirs(os.path.join(basedir, 'instance'))

app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL') or f'sqlite:///{db_path}'
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['MIN_REASON_LENGTH'] = int(os.environ.get('MIN_REASON_LENGTH', 5))

log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(level=log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
app.logger.setLevel(log_level)

db.init_app(app)

login_manager = LoginManager()
login_manager.login_view = 'login'
login_manager.init_app(app)


def _ensure_model_columns():
    """Add any missing columns declared in models but missing in a SQLite DB."""
    from sqlalchemy import String, Integer, Float, Date, DateTime, Boolean, Text

    if db.engine.dialect.name != 'sqlite':
        return

    for table in db.metadata.sorted_tables:
        rows = db.session.execute(text(f"PRAGMA table_info('{table.name}')")).fetchall()
        existing_cols = [r[1] for r in rows]
        for col in table.columns:
            if col.name in existing_cols:
                continue
            coltype = col.type
            sqltype = 'VARCHAR(200)'
            if isinstance(coltype, (String, Text)):
                sqltype = 'VARCHAR(200)'
            elif isinstance(coltype, (Integer, Boolean)):
                sqltype = 'INTEGER'
            elif isinstance(coltype, Float):
                sqltype = 'REAL'
            elif isinstance(coltype, Date):
                sqltype = 'DATE'
            elif isinstance(coltype, DateTime):
                sqltype = 'DATETIME'
            db.session.execute(text(f"ALTER TABLE {table.name} ADD COLUMN {col.name} {sqltype};"))
            app.logger.info(f"Added missing column {table.name}.{col.name}")
    db.session.commit()


with app.app_context():
    db.create_all()
    _ensure_model_columns()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@app.route('/')
@login_required
def index():
    today = date.today()
    todays_routes = Route.query.filter_by(date=today).order_by(Route.id.asc()).all()
    pending_lenses = LensOrder.query.filter(LensOrder.status.in_(['Pending', 'NotDelivered'])).count()
    pending_payments = Payment.query.filter_by(status='Pending').count()
    delivery_count = Delivery.query.count()

    return render_template('index.html',
                           today_date=today.strftime('%B %d, %Y'),
                           routes=todays_routes,
                           pending_lenses=pending_lenses,
                           pending_payments=pending_payments,
                           delivery_count=delivery_count)


@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        user = User.query.filter_by(username=request.form.get('username')).first()
        if user and check_password_hash(user.password_hash, str(request.form.get('password'))):
            login_user(user)
            app.logger.info(f"User: {user.username}, Action: LOGIN")
            return redirect(url_for('index'))
        flash('Invalid Credentials', 'danger')
    return render_template('login.html')


@app.route('/logout')
@login_required
def logout():
    app.logger.info(f"User: {current_user.username}, Action: LOGOUT")
    logout_user()
    flash('You have been logged out.', 'info')
    return redirect(url_for('login'))
