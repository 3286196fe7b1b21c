# bikeshop_api/models/service_request.py

from datetime import datetime

from .base import db
from .enums import RequestStatus, ServiceRecordStatus


class ServiceRequest(db.Model):
    __tablename__ = 'service_requests'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey('stores.id'), nullable=False)
    status = db.Column(db.String(20), default=RequestStatus.PENDING.value, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = db.relationship('User', backref='service_requests')
    store = db.relationship('Store', backref=db.backref('service_requests', lazy='dynamic'))
    quotations = db.relationship('Quotation', backref='service_request', lazy='dynamic', cascade="all, delete-orphan")
    service_record = db.relationship('ServiceRecord', backref='service_request', uselist=False, cascade="all, delete-orphan")

    def can_be_quoted(self):
        return self.status == RequestStatus.PENDING.value


class ServiceRecord(db.Model):
    __tablename__ = 'service_records'

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id'), nullable=False, unique=True)
    status = db.Column(db.String(20), default=ServiceRecordStatus.PENDING.value, nullable=False)
    work_performed = db.Column(db.Text, nullable=True)
    completed_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    invoices = db.relationship('Invoice', backref='service_record', lazy='dynamic', cascade="all, delete-orphan")

    def is_completed(self):
        return self.status == ServiceRecordStatus.COMPLETED.value
