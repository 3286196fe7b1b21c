# bikeshop_api/models/store.py

from datetime import datetime

from .base import db


class Store(db.Model):
    __tablename__ = 'stores'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    address = db.Column(db.String(200))
    phone = db.Column(db.String(20))
    email = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = db.relationship('User', backref='owned_stores')
    staff_permissions = db.relationship('StaffStorePermission', backref='store', lazy='dynamic', cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'is_active': self.is_active,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
        }


class StaffStorePermission(db.Model):
    __tablename__ = 'staff_store_permissions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False)
    permissions = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('store_permissions', lazy='dynamic'))
    __table_args__ = (db.UniqueConstraint('user_id', 'store_id', name='_staff_store_uc'),)

    def has_permission(self, permission):
        return self.is_active and getattr(permission, 'value', permission) in (self.permissions or [])
