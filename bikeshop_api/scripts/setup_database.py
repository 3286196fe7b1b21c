# bikeshop_api/scripts/setup_database.py
# Create all tables and seed a default set of users, a store and the
# staff permissions that go with it.

import sys

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from ..app import create_app
from ..models import db, User, Store, StaffStorePermission, UserRole, Permission

DEFAULT_USERS = [
    {'username': 'admin', 'email': 'admin@bikeshop.local', 'first_name': 'Shop', 'last_name': 'Admin', 'role': UserRole.ADMIN.value},
    {'username': 'owner', 'email': 'owner@bikeshop.local', 'first_name': 'Store', 'last_name': 'Owner', 'role': UserRole.STORE_OWNER.value},
    {'username': 'mechanic', 'email': 'mechanic@bikeshop.local', 'first_name': 'Bench', 'last_name': 'Mechanic', 'role': UserRole.STAFF.value},
    {'username': 'rider', 'email': 'rider@bikeshop.local', 'first_name': 'Casey', 'last_name': 'Rider', 'role': UserRole.CUSTOMER.value},
]


def seed_defaults(password='password'):
    """Seed users, one store and staff permissions. Existing data is left alone."""
    existing_users = User.query.count()
    if existing_users > 0:
        print(f"✅ Found {existing_users} existing users, skipping seed")
        return False

    users = {}
    for user_data in DEFAULT_USERS:
        user = User(**user_data)
        user.set_password(password)
        db.session.add(user)
        users[user.username] = user
    db.session.flush()

    store = Store(owner_id=users['owner'].id, name='Downtown Bike Shop', email='shop@bikeshop.local')
    db.session.add(store)
    db.session.flush()

    db.session.add(StaffStorePermission(
        user_id=users['mechanic'].id,
        store_id=store.id,
        permissions=[permission.value for permission in Permission],
    ))
    db.session.commit()
    print(f"✅ Created {len(DEFAULT_USERS)} default users and store '{store.name}'")
    return True


def main():
    print("Bike Shop Service API - Database Setup")
    print("=" * 50)
    app = create_app()

    with app.app_context():
        try:
            db.create_all()
            tables = sorted(inspect(db.engine).get_table_names())
            print(f"✅ Found {len(tables)} tables:")
            for table in tables:
                print(f"  - {table}")
            seed_defaults()
        except SQLAlchemyError as e:
            db.session.rollback()
            print(f"❌ Database setup failed: {e}")
            return 1

    print("\n🎉 Database setup complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
