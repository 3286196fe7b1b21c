# bikeshop_api/models/invoice.py

from .base import db
from .document import PricedDocumentMixin
from .enums import PaymentStatus
from ..services import money
from ..services.date_utils import utcnow, days_until, generate_document_number, format_datetime_for_response

MAX_PAYMENT_NOTES_LENGTH = 1000


def compute_payment_status(paid_amount, total, due_date, now):
    """
    Payment status from the amounts and the clock alone.

    A partly paid invoice stays ``partial`` after its due date. An invoice
    with a zero total counts as paid.
    """
    if paid_amount >= total:
        return PaymentStatus.PAID.value
    if paid_amount > 0:
        return PaymentStatus.PARTIAL.value
    if now <= due_date:
        return PaymentStatus.PENDING.value
    return PaymentStatus.OVERDUE.value


class Invoice(PricedDocumentMixin, db.Model):
    __tablename__ = 'invoices'

    id = db.Column(db.Integer, primary_key=True)
    service_record_id = db.Column(db.Integer, db.ForeignKey('service_records.id'), nullable=False, index=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey('quotations.id'), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    invoice_number = db.Column(db.String(50), unique=True, nullable=False)
    _paid_amount = db.Column('paid_amount', db.Numeric(10, 2), nullable=False, default=0)
    payment_status = db.Column(db.String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    due_date = db.Column(db.DateTime, nullable=False, index=True)
    paid_date = db.Column(db.DateTime, nullable=True)
    payments = db.Column(db.JSON, nullable=False, default=list)
    version = db.Column(db.Integer, nullable=False)

    quotation = db.relationship('Quotation', backref=db.backref('invoices', lazy='dynamic'))
    created_by = db.relationship('User')

    __mapper_args__ = {'version_id_col': version}

    NUMBER_PREFIX = 'INV'

    @classmethod
    def generate_invoice_number(cls, now=None, attempt=0):
        return generate_document_number(cls.NUMBER_PREFIX, now=now, attempt=attempt)

    @property
    def paid_amount(self):
        return money.round2(self._paid_amount or 0)

    @property
    def remaining_amount(self):
        return max(self.total - self.paid_amount, money.ZERO)

    def is_cancelled(self):
        return self.payment_status == PaymentStatus.CANCELLED.value

    def is_paid(self):
        return self.payment_status == PaymentStatus.PAID.value

    def can_be_edited(self):
        return not (self.is_paid() or self.is_cancelled())

    def expected_payment_status(self, now=None):
        if self.is_cancelled():
            return self.payment_status
        return compute_payment_status(self.paid_amount, self.total, self.due_date, now or utcnow())

    def refresh_payment_status(self, now=None, paid_at=None):
        """
        Bring ``payment_status`` in line with the amounts and the clock.

        ``paid_date`` is set only on the transition into ``paid``. Returns
        True when the stored status changed.
        """
        if self.is_cancelled():
            return False
        now = now or utcnow()
        previous = self.payment_status
        status = compute_payment_status(self.paid_amount, self.total, self.due_date, now)
        if status == PaymentStatus.PAID.value and previous != PaymentStatus.PAID.value:
            self.paid_date = paid_at or now
        elif status != PaymentStatus.PAID.value:
            self.paid_date = None
        self.payment_status = status
        return status != previous

    def apply_payment(self, amount, paid_at, notes=None, recorded_by_id=None, now=None):
        """
        Add a payment to the running total.

        Everything is validated before anything is written, so a rejected
        payment leaves the invoice untouched.
        """
        now = now or utcnow()
        amount = money.to_money(amount, 'amount')
        if amount <= 0:
            raise money.ValidationError('Payment amount must be greater than zero', field='amount')
        if amount > self.remaining_amount:
            raise money.ValidationError(
                f'Payment amount cannot exceed the remaining balance of {money.format_money(self.remaining_amount)}',
                field='amount'
            )
        if paid_at > now:
            raise money.ValidationError('Payment date cannot be in the future', field='payment_date')
        if notes is not None and len(notes) > MAX_PAYMENT_NOTES_LENGTH:
            raise money.ValidationError(
                f'Payment notes cannot exceed {MAX_PAYMENT_NOTES_LENGTH} characters', field='notes'
            )

        self._paid_amount = self.paid_amount + amount
        self.payments = list(self.payments or []) + [{
            'amount': str(amount),
            'paid_at': format_datetime_for_response(paid_at),
            'notes': notes,
            'recorded_by_id': recorded_by_id,
        }]
        self.refresh_payment_status(now=now, paid_at=paid_at)
        return amount

    def cancel(self):
        self.payment_status = PaymentStatus.CANCELLED.value

    def is_overdue(self, now=None):
        return self.expected_payment_status(now) == PaymentStatus.OVERDUE.value

    def get_days_until_due(self, now=None):
        return days_until(self.due_date, now)

    def get_days_overdue(self, now=None):
        if not self.is_overdue(now):
            return 0
        return max(-self.get_days_until_due(now), 0)

    def is_due_soon(self, days=7, now=None):
        if self.expected_payment_status(now) not in (PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value):
            return False
        days_left = self.get_days_until_due(now)
        return 0 <= days_left <= days

    def to_dict(self, now=None, include_record=False):
        now = now or utcnow()
        data = {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'service_record_id': self.service_record_id,
            'quotation_id': self.quotation_id,
            'created_by_id': self.created_by_id,
            'paid_amount': money.format_money(self.paid_amount),
            'remaining_amount': money.format_money(self.remaining_amount),
            'payment_status': self.expected_payment_status(now),
            'due_date': format_datetime_for_response(self.due_date),
            'paid_date': format_datetime_for_response(self.paid_date),
            'days_until_due': self.get_days_until_due(now),
            'days_overdue': self.get_days_overdue(now),
            'payments': list(self.payments or []),
            'notes': self.notes,
            'created_at': format_datetime_for_response(self.created_at),
            'updated_at': format_datetime_for_response(self.updated_at),
        }
        data.update(self.pricing_dict())
        if include_record and self.service_record is not None:
            data['service_record'] = {
                'id': self.service_record.id,
                'service_request_id': self.service_record.service_request_id,
                'status': self.service_record.status,
            }
        return data

    def __repr__(self):
        return f'<Invoice id={self.id} number={self.invoice_number} status={self.payment_status}>'
