# bikeshop_api/middleware/auth.py

from functools import wraps
from flask import jsonify
from flask_login import current_user
import logging

from ..models import UserRole

logger = logging.getLogger(__name__)

STORE_ROLES = (UserRole.ADMIN, UserRole.STORE_OWNER, UserRole.STAFF)


def active_user_required(f):
    """
    Decorator to ensure the logged-in user's account is active.
    This must be placed AFTER the @login_required decorator.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required', 'code': 'UNAUTHORIZED'}), 401

        if not current_user.is_active:
            logger.warning(f"Inactive user '{current_user.username}' attempted to access a resource.")
            return jsonify({'error': 'Your account is disabled. Please contact an administrator.', 'code': 'FORBIDDEN'}), 403

        return f(*args, **kwargs)
    return decorated_function


def store_staff_required(f):
    """
    Decorator for store-side endpoints: admins, store owners and staff.
    Which stores a user may touch is decided by the services.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            logger.warning("Unauthenticated access attempt to a store route.")
            return jsonify({'error': 'Authentication required', 'code': 'UNAUTHORIZED'}), 401

        if not current_user.has_role(*STORE_ROLES):
            logger.warning(f"User '{current_user.username}' (role: {current_user.role}) attempted to access a store route.")
            return jsonify({'error': 'Store staff access required', 'code': 'FORBIDDEN'}), 403

        return f(*args, **kwargs)
    return decorated_function


def customer_required(f):
    """
    Decorator to ensure a user is logged in and has the 'customer' role.
    This must be placed AFTER the @login_required decorator.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required', 'code': 'UNAUTHORIZED'}), 401

        if not current_user.has_role(UserRole.CUSTOMER):
            logger.warning(f"User '{current_user.username}' (role: {current_user.role}) attempted to access a customer route.")
            return jsonify({'error': 'Customer access required', 'code': 'FORBIDDEN'}), 403

        return f(*args, **kwargs)
    return decorated_function
