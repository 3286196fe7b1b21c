from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from flask_login import FlaskLoginClient

from bikeshop_api.app import create_app
from bikeshop_api.models import (
    db,
    User,
    Store,
    StaffStorePermission,
    ServiceRequest,
    ServiceRecord,
    UserRole,
    RequestStatus,
    ServiceRecordStatus,
    Permission,
)

# Naive UTC, 10:00 in the shop's timezone
NOW = datetime(2025, 5, 21, 17, 0, 0)

STANDARD_LINES = [
    {"description": "Brake bleed", "quantity": 2, "unit_price": "25.00"},
    {"description": "Tubeless setup", "quantity": 2, "unit_price": "50.00"},
]


@pytest.fixture
def app():
    app = create_app("testing")
    app.test_client_class = FlaskLoginClient
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """App context for tests that call services and models directly."""
    with app.app_context():
        yield app


def _user(username, role, **extra):
    user = User(
        username=username,
        email=f"{username}@bikeshop.test",
        first_name=username.title(),
        role=role,
        **extra,
    )
    user.set_password("password")
    db.session.add(user)
    return user


def _request_with_record(customer, store, record_status=ServiceRecordStatus.COMPLETED.value,
                         request_status=RequestStatus.PENDING.value):
    service_request = ServiceRequest(
        customer_id=customer.id,
        store_id=store.id,
        status=request_status,
        description="Annual service",
    )
    db.session.add(service_request)
    db.session.flush()
    record = ServiceRecord(
        service_request_id=service_request.id,
        status=record_status,
        completed_date=NOW if record_status == ServiceRecordStatus.COMPLETED.value else None,
    )
    db.session.add(record)
    db.session.flush()
    return service_request, record


@pytest.fixture
def seed(app):
    """
    Two stores with their people plus one pending service request for
    ``customer`` at ``store``. Returns ids so they stay usable across app
    contexts.
    """
    with app.app_context():
        admin = _user("admin", UserRole.ADMIN.value)
        owner = _user("owner", UserRole.STORE_OWNER.value)
        other_owner = _user("other_owner", UserRole.STORE_OWNER.value)
        staff = _user("mechanic", UserRole.STAFF.value)
        viewer = _user("viewer", UserRole.STAFF.value)
        customer = _user("rider", UserRole.CUSTOMER.value)
        other_customer = _user("other_rider", UserRole.CUSTOMER.value)
        db.session.flush()

        store = Store(owner_id=owner.id, name="Downtown Bikes")
        other_store = Store(owner_id=other_owner.id, name="Uptown Cycles")
        db.session.add_all([store, other_store])
        db.session.flush()

        db.session.add(StaffStorePermission(
            user_id=staff.id,
            store_id=store.id,
            permissions=[permission.value for permission in Permission],
        ))
        db.session.add(StaffStorePermission(
            user_id=viewer.id,
            store_id=store.id,
            permissions=[Permission.VIEW_QUOTATIONS.value, Permission.VIEW_INVOICES.value],
        ))

        service_request, record = _request_with_record(customer, store)
        other_request, other_record = _request_with_record(other_customer, other_store)
        db.session.commit()

        return SimpleNamespace(
            admin_id=admin.id,
            owner_id=owner.id,
            other_owner_id=other_owner.id,
            staff_id=staff.id,
            viewer_id=viewer.id,
            customer_id=customer.id,
            other_customer_id=other_customer.id,
            store_id=store.id,
            other_store_id=other_store.id,
            request_id=service_request.id,
            record_id=record.id,
            other_request_id=other_request.id,
            other_record_id=other_record.id,
        )


@pytest.fixture
def make_request(app, seed):
    """Create another service request (and record) for ``customer`` at ``store``."""
    def factory(record_status=ServiceRecordStatus.COMPLETED.value, request_status=RequestStatus.PENDING.value):
        with app.app_context():
            customer = db.session.get(User, seed.customer_id)
            store = db.session.get(Store, seed.store_id)
            service_request, record = _request_with_record(customer, store, record_status, request_status)
            db.session.commit()
            return service_request.id, record.id
    return factory


@pytest.fixture
def client_for(app):
    """A FlaskLoginClient logged in as the user with the given id."""
    def factory(user_id):
        with app.app_context():
            user = db.session.get(User, user_id)
            return app.test_client(user=user)
    return factory


def get_user(user_id):
    return db.session.get(User, user_id)


def days_from_now(days, now=NOW):
    return now + timedelta(days=days)
