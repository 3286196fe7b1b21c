# bikeshop_api/services/expiration.py
"""
Batch jobs that persist time-driven status changes.

Both jobs commit document by document. A document that fails is rolled
back and reported in the result, and the job moves on to the next one.
Failing to run the selection query at all is not caught here.
"""

import logging
from dataclasses import dataclass, field

from ..models import db, Quotation, Invoice, QuotationStatus, PaymentStatus
from .date_utils import utcnow
from .quotation_service import expire_quotation

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self):
        return {'processed': self.processed, 'errors': list(self.errors)}


def _stale_quotation_ids(now):
    rows = db.session.query(Quotation.id).filter(
        Quotation.status.in_([QuotationStatus.DRAFT.value, QuotationStatus.SENT.value]),
        Quotation.valid_until < now,
    ).order_by(Quotation.id).all()
    return [row.id for row in rows]


def run_expiration_sweep(now=None):
    """
    Expire every draft or sent quotation whose ``valid_until`` has passed.

    Running it again straight away processes nothing, since expired
    quotations are no longer selected.
    """
    now = now or utcnow()
    result = SweepResult()
    quotation_ids = _stale_quotation_ids(now)
    logger.info(f"Expiration sweep found {len(quotation_ids)} stale quotations")

    for quotation_id in quotation_ids:
        try:
            quotation = Quotation.query.filter(Quotation.id == quotation_id).with_for_update().first()
            if quotation is None or not expire_quotation(quotation, now):
                continue
            db.session.commit()
            result.processed += 1
        except Exception as e:
            db.session.rollback()
            message = f"Quotation {quotation_id}: {e}"
            result.errors.append(message)
            logger.error(f"Expiration sweep failed for {message}")

    logger.info(f"Expiration sweep finished: {result.processed} expired, {len(result.errors)} errors")
    return result


def refresh_overdue_invoices(now=None):
    """Store ``overdue`` on unpaid invoices whose due date has passed."""
    now = now or utcnow()
    result = SweepResult()
    rows = db.session.query(Invoice.id).filter(
        Invoice.payment_status == PaymentStatus.PENDING.value,
        Invoice.due_date < now,
    ).order_by(Invoice.id).all()

    for row in rows:
        try:
            invoice = Invoice.query.filter(Invoice.id == row.id).with_for_update().first()
            if invoice is None or not invoice.refresh_payment_status(now=now):
                continue
            db.session.commit()
            result.processed += 1
        except Exception as e:
            db.session.rollback()
            message = f"Invoice {row.id}: {e}"
            result.errors.append(message)
            logger.error(f"Overdue refresh failed for {message}")

    logger.info(f"Overdue refresh finished: {result.processed} updated, {len(result.errors)} errors")
    return result
