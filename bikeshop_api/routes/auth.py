# bikeshop_api/routes/auth.py
from flask import Blueprint, jsonify, session
from flask_login import login_user, logout_user, login_required, current_user
from datetime import datetime
import logging

from . import json_body
from ..models import db, User

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def create_error_response(message, status_code, code):
    return jsonify({'error': message, 'code': code}), status_code


@auth_bp.route('/login', methods=['POST'])
def login():
    """Start a session for a username/password pair"""
    data = json_body()
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    if not username or not password:
        logger.warning("Login validation failed: missing username or password")
        return create_error_response("Username and password are required", 400, 'VALIDATION_ERROR')

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password):
        logger.warning(f"Login failed for username '{username}'")
        return create_error_response("Invalid username or password", 401, 'UNAUTHORIZED')

    if not user.is_active:
        logger.warning(f"Login failed: User '{username}' is inactive")
        return create_error_response("Account is disabled", 401, 'UNAUTHORIZED')

    user.last_login = datetime.utcnow()
    db.session.commit()
    login_user(user, remember=True)
    logger.info(f"Login successful for user '{username}' (ID: {user.id})")

    return jsonify({
        'message': 'Login successful',
        'user': user.to_dict(),
    }), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """End the session; succeeds even without one"""
    was_authenticated = current_user.is_authenticated
    if was_authenticated:
        logger.info(f"Logout for user {current_user.username} (ID: {current_user.id})")
    logout_user()
    session.clear()
    return jsonify({
        'message': 'Logout successful',
        'was_authenticated': was_authenticated,
    }), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    return jsonify({'user': current_user.to_dict()}), 200
