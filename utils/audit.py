from flask import current_app
from flask_login import current_user


def log_action(action, details=''):
    """Log user actions for audit trail."""
    username = current_user.username if current_user.is_authenticated else 'anonymous'
    current_app.logger.info(f"User: {username}, Action: {action}, Details: {details}")
