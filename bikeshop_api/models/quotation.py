# bikeshop_api/models/quotation.py

from .base import db
from .document import PricedDocumentMixin
from .enums import QuotationStatus
from ..services.date_utils import utcnow, days_until, generate_document_number, format_datetime_for_response

OPEN_STATUSES = (QuotationStatus.DRAFT.value, QuotationStatus.SENT.value)
EDITABLE_STATUSES = (QuotationStatus.DRAFT.value, QuotationStatus.REJECTED.value)


class Quotation(PricedDocumentMixin, db.Model):
    __tablename__ = 'quotations'

    id = db.Column(db.Integer, primary_key=True)
    service_request_id = db.Column(db.Integer, db.ForeignKey('service_requests.id', ondelete='CASCADE'), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    quotation_number = db.Column(db.String(50), unique=True, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), default=QuotationStatus.DRAFT.value, nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)

    created_by = db.relationship('User')

    __mapper_args__ = {'version_id_col': version}

    NUMBER_PREFIX = 'QUO'

    @classmethod
    def generate_quotation_number(cls, now=None, attempt=0):
        return generate_document_number(cls.NUMBER_PREFIX, now=now, attempt=attempt)

    def is_draft(self):
        return self.status == QuotationStatus.DRAFT.value

    def is_sent(self):
        return self.status == QuotationStatus.SENT.value

    def is_approved(self):
        return self.status == QuotationStatus.APPROVED.value

    def is_rejected(self):
        return self.status == QuotationStatus.REJECTED.value

    def effective_status(self, now=None):
        """
        The status a reader should see right now.

        Draft and sent quotations past ``valid_until`` report ``expired`` even
        if the sweep has not stored that yet. The sweep, on-read expiry and
        the approve/reject guards all go through here.
        """
        now = now or utcnow()
        if self.status in OPEN_STATUSES and now > self.valid_until:
            return QuotationStatus.EXPIRED.value
        return self.status

    def is_expired(self, now=None):
        now = now or utcnow()
        return self.status == QuotationStatus.EXPIRED.value or now > self.valid_until

    def needs_expiry(self, now=None):
        return self.status in OPEN_STATUSES and self.effective_status(now) == QuotationStatus.EXPIRED.value

    def mark_expired(self, now=None):
        """Store the expired status. Returns False when there was nothing to do."""
        if not self.needs_expiry(now):
            return False
        self.status = QuotationStatus.EXPIRED.value
        return True

    def can_be_sent(self, now=None):
        return self.is_draft() and not self.is_expired(now)

    def can_be_approved(self, now=None):
        return self.is_sent() and not self.is_expired(now)

    def can_be_rejected(self, now=None):
        return self.can_be_approved(now)

    def can_be_edited(self):
        return self.status in EDITABLE_STATUSES

    def get_days_until_expiry(self, now=None):
        return days_until(self.valid_until, now)

    def is_expiring_soon(self, days=3, now=None):
        days_left = self.get_days_until_expiry(now)
        return 0 < days_left <= days

    def to_dict(self, now=None, include_request=False):
        now = now or utcnow()
        data = {
            'id': self.id,
            'quotation_number': self.quotation_number,
            'service_request_id': self.service_request_id,
            'created_by_id': self.created_by_id,
            'status': self.effective_status(now),
            'valid_until': format_datetime_for_response(self.valid_until),
            'days_until_expiry': self.get_days_until_expiry(now),
            'is_expired': self.is_expired(now),
            'is_expiring_soon': self.is_expiring_soon(now=now),
            'can_be_edited': self.can_be_edited(),
            'notes': self.notes,
            'created_at': format_datetime_for_response(self.created_at),
            'updated_at': format_datetime_for_response(self.updated_at),
        }
        data.update(self.pricing_dict())
        if include_request and self.service_request is not None:
            data['service_request'] = {
                'id': self.service_request.id,
                'customer_id': self.service_request.customer_id,
                'store_id': self.service_request.store_id,
                'status': self.service_request.status,
            }
        return data

    def __repr__(self):
        return f'<Quotation id={self.id} number={self.quotation_number} status={self.status}>'
