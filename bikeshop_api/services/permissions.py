# bikeshop_api/services/permissions.py

import logging

from ..models import db, Store, StaffStorePermission, UserRole
from .errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


def verify_store_permission(actor, store_id, permission):
    """
    Make sure ``actor`` may perform ``permission`` on ``store_id``.

    Admins may act on every store, store owners on the stores they own and
    staff members wherever an active StaffStorePermission grants the
    permission. Everyone else is refused.
    """
    if actor is None or not getattr(actor, 'is_authenticated', False):
        raise ForbiddenError('Authentication required')
    if not actor.is_active:
        raise ForbiddenError('User account is inactive')

    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError('Store not found')

    permission_name = getattr(permission, 'value', permission)

    if actor.has_role(UserRole.ADMIN):
        return store

    if actor.has_role(UserRole.STORE_OWNER):
        if store.owner_id != actor.id:
            logger.warning(f"Store owner {actor.id} denied access to store {store_id}")
            raise ForbiddenError('Access denied to this store')
        return store

    if actor.has_role(UserRole.STAFF):
        grant = StaffStorePermission.query.filter_by(user_id=actor.id, store_id=store_id).first()
        if grant is None or not grant.has_permission(permission_name):
            logger.warning(f"Staff {actor.id} lacks {permission_name} on store {store_id}")
            raise ForbiddenError(f'Insufficient permissions: {permission_name} required')
        return store

    logger.warning(f"User {actor.id} with role {actor.role} attempted store operation {permission_name}")
    raise ForbiddenError('Insufficient role permissions')


def verify_customer(actor):
    if actor is None or not getattr(actor, 'is_authenticated', False):
        raise ForbiddenError('Authentication required')
    if not actor.has_role(UserRole.CUSTOMER):
        raise ForbiddenError('User is not a customer')
    if not actor.is_active:
        raise ForbiddenError('Customer account is inactive')
    return actor


def verify_request_owner(actor, service_request, message='Access denied to this document'):
    """The customer behind a service request is the only one allowed to act on its documents."""
    if service_request is None or service_request.customer_id != actor.id:
        logger.warning(f"Customer {actor.id} denied access: {message}")
        raise ForbiddenError(message)
    return service_request
