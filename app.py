"""Application factory.

`main.py` configures the Flask app, database and login manager. This module
provides `create_app()` for tests and the dev server, loading the blueprint
modules once and making sure the tables exist.
"""

import os

from werkzeug.security import generate_password_hash

from main import app as main_app
from utils.module_loader import load_modules
from models import db, User


def create_app():
    """Return the application instance from `main` with every module registered."""
    app = main_app

    # Load modules once to avoid duplicate registrations
    if not getattr(app, '_modules_loaded', False):
        load_modules(app, blueprint_dir='blueprints')
        app._modules_loaded = True

    with app.app_context():
        db.create_all()

    return app


def seed_admin(app):
    """Create the default admin account when none exists."""
    with app.app_context():
        if not User.query.filter_by(username='admin').first():
            password = os.environ.get('ADMIN_PASSWORD', 'admin123')
            db.session.add(User(username='admin',
                                password_hash=generate_password_hash(password),
                                role='admin'))
            db.session.commit()
            app.logger.info("Seeded default admin user")


if __name__ == '__main__':
    app = create_app()
    seed_admin(app)
    app.run(host='0.0.0.0', port=5000, debug=os.environ.get('FLASK_DEBUG') == '1')
