# bikeshop_api/services/invoice_service.py
"""
Invoice lifecycle: create from a completed service record, edit, take
payments, cancel and keep time-driven statuses current.
"""

import logging

from flask import current_app

from ..models import db, Invoice, Quotation, ServiceRecord, Permission, PaymentStatus
from . import money, queries
from .date_utils import utcnow, parse_datetime, parse_past_datetime, add_days
from .errors import ValidationError, NotFoundError, ConflictError, ForbiddenError
from .numbering import insert_with_unique_number
from .permissions import verify_store_permission, verify_customer, verify_request_owner

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 2000


def _clean_notes(notes):
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError('notes must be a string', field='notes')
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f'Notes cannot exceed {MAX_NOTES_LENGTH} characters', field='notes')
    return notes.strip() or None


def _resolve_due_days(due_days):
    if due_days is None:
        due_days = current_app.config.get('DEFAULT_INVOICE_DUE_DAYS', 30)
    if isinstance(due_days, bool) or not isinstance(due_days, int) or due_days < 1:
        raise ValidationError('due_days must be a positive whole number', field='due_days')
    return due_days


def _verify_service_record(service_record_id, store_id):
    record = db.session.get(ServiceRecord, queries.parse_id(service_record_id, 'service_record_id'))
    if record is None:
        raise NotFoundError('Service record not found')
    if record.service_request.store_id != store_id:
        raise ForbiddenError('Service record does not belong to this store')
    if not record.is_completed():
        raise ConflictError('Service record must be completed before invoicing')
    if record.invoices.filter(Invoice.payment_status != PaymentStatus.CANCELLED.value).first() is not None:
        raise ConflictError('Service record has already been invoiced')
    return record


def _verify_quotation(quotation_id, record):
    quotation = db.session.get(Quotation, queries.parse_id(quotation_id, 'quotation_id'))
    if quotation is None:
        raise NotFoundError('Quotation not found')
    if quotation.service_request_id != record.service_request_id:
        raise ConflictError('Quotation does not belong to the same service request')
    if not quotation.is_approved():
        raise ConflictError('Only approved quotations can be invoiced')
    return quotation


def _copy_items(quotation):
    # Invoice lines get ids of their own
    return [money.LineItem.create(item.description, item.quantity, item.unit_price) for item in quotation.items]


def _load(invoice_id, lock=False):
    query = Invoice.query.filter(Invoice.id == invoice_id)
    if lock:
        query = query.with_for_update()
    invoice = query.first()
    if invoice is None:
        raise NotFoundError('Invoice not found')
    return invoice


def _check_store(invoice, store_id):
    if invoice.service_record.service_request.store_id != store_id:
        raise ForbiddenError('Invoice does not belong to this store')
    return invoice


def create_invoice(actor, store_id, service_record_id, line_items=None, tax_rate=None,
                   due_days=None, notes=None, quotation_id=None, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.CREATE_INVOICES)

    due_days = _resolve_due_days(due_days)
    notes = _clean_notes(notes)
    record = _verify_service_record(service_record_id, store_id)
    quotation = _verify_quotation(quotation_id, record) if quotation_id is not None else None

    if line_items is not None:
        items = money.parse_line_items(line_items)
    elif quotation is not None:
        items = _copy_items(quotation)
    else:
        raise ValidationError('At least one line item is required', field='line_items')

    if tax_rate is None:
        tax_rate = quotation.tax_rate if quotation is not None else 0

    invoice = Invoice(
        service_record_id=record.id,
        quotation_id=quotation.id if quotation is not None else None,
        created_by_id=actor.id,
        due_date=add_days(due_days, now),
        payment_status=PaymentStatus.PENDING.value,
        payments=[],
        notes=notes,
    )
    invoice.set_pricing(items, tax_rate)
    invoice.refresh_payment_status(now=now)

    insert_with_unique_number(invoice, 'invoice_number', Invoice.generate_invoice_number, now=now)
    logger.info(f"Invoice {invoice.invoice_number} created for service record {record.id} by user {actor.id}")
    return invoice


def get_invoice(actor, store_id, invoice_id):
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    return _check_store(_load(invoice_id), store_id)


def get_invoice_by_number(actor, store_id, invoice_number):
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    invoice = Invoice.query.filter_by(invoice_number=invoice_number).first()
    if invoice is None:
        raise NotFoundError('Invoice not found')
    return _check_store(invoice, store_id)


def get_customer_invoice(actor, invoice_id):
    verify_customer(actor)
    invoice = _load(invoice_id)
    verify_request_owner(actor, invoice.service_record.service_request, 'Invoice does not belong to customer')
    return invoice


def _start_edit(invoice):
    if not invoice.can_be_edited():
        logger.warning(f"Edit refused for invoice {invoice.invoice_number} in status {invoice.payment_status}")
        raise ConflictError(f'Invoice cannot be edited in status {invoice.payment_status}')


def _finish_edit(invoice, now):
    if invoice.total < invoice.paid_amount:
        raise ValidationError(
            f'Invoice total cannot drop below the amount already paid ({money.format_money(invoice.paid_amount)})',
            field='line_items'
        )
    invoice.refresh_payment_status(now=now)
    db.session.commit()


def update_invoice(actor, store_id, invoice_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    editable = {'line_items', 'tax_rate', 'due_date', 'notes'}
    if not editable & set(data):
        raise ValidationError(f"Provide at least one of: {', '.join(sorted(editable))}")

    invoice = _check_store(_load(invoice_id, lock=True), store_id)
    _start_edit(invoice)

    if 'line_items' in data:
        invoice.set_pricing(money.parse_line_items(data['line_items']), data.get('tax_rate'))
    elif 'tax_rate' in data:
        invoice.tax_rate = data['tax_rate']
    if 'due_date' in data:
        invoice.due_date = parse_datetime(data['due_date'], 'due_date')
    if 'notes' in data:
        invoice.notes = _clean_notes(data['notes'])

    _finish_edit(invoice, now)
    logger.info(f"Invoice {invoice.invoice_number} updated by user {actor.id}")
    return invoice


def add_line_item(actor, store_id, invoice_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    invoice = _check_store(_load(invoice_id, lock=True), store_id)
    _start_edit(invoice)
    item = invoice.add_line_item(money.LineItem.from_payload(data))
    _finish_edit(invoice, now)
    logger.info(f"Line item {item.id} added to invoice {invoice.invoice_number}")
    return invoice


def update_line_item(actor, store_id, invoice_id, item_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    invoice = _check_store(_load(invoice_id, lock=True), store_id)
    _start_edit(invoice)
    invoice.update_line_item(item_id, data)
    _finish_edit(invoice, now)
    return invoice


def remove_line_item(actor, store_id, invoice_id, item_id, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    invoice = _check_store(_load(invoice_id, lock=True), store_id)
    _start_edit(invoice)
    invoice.remove_line_item(item_id)
    _finish_edit(invoice, now)
    logger.info(f"Line item {item_id} removed from invoice {invoice.invoice_number}")
    return invoice


def record_payment(actor, store_id, invoice_id, amount, payment_date=None, notes=None, now=None):
    """
    Record a payment against an invoice.

    The amount must be positive and no larger than the outstanding balance,
    and the payment date cannot lie in the future. A rejected payment leaves
    the invoice exactly as it was.
    """
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    invoice = _check_store(_load(invoice_id, lock=True), store_id)

    if invoice.is_cancelled():
        raise ConflictError('Cannot record a payment on a cancelled invoice')
    if invoice.is_paid():
        raise ConflictError('Invoice is already paid')

    paid_at = parse_past_datetime(payment_date, 'payment_date', now) if payment_date is not None else now
    if notes is not None and not isinstance(notes, str):
        raise ValidationError('notes must be a string', field='notes')

    amount = invoice.apply_payment(amount, paid_at, notes=notes, recorded_by_id=actor.id, now=now)
    db.session.commit()
    logger.info(
        f"Payment of {money.format_money(amount)} recorded on invoice {invoice.invoice_number}, "
        f"status now {invoice.payment_status}"
    )
    return invoice


def cancel_invoice(actor, store_id, invoice_id, reason=None):
    verify_store_permission(actor, store_id, Permission.UPDATE_INVOICES)
    invoice = _check_store(_load(invoice_id, lock=True), store_id)
    if invoice.is_paid():
        raise ConflictError('Cannot cancel a paid invoice')
    if invoice.is_cancelled():
        raise ConflictError('Invoice is already cancelled')

    notes = invoice.notes
    reason = _clean_notes(reason)
    if reason:
        notes = f"{notes}\nCancelled: {reason}" if notes else f"Cancelled: {reason}"
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f'Notes cannot exceed {MAX_NOTES_LENGTH} characters', field='reason')

    invoice.cancel()
    invoice.notes = notes
    db.session.commit()
    logger.info(f"Invoice {invoice.invoice_number} cancelled by user {actor.id}")
    return invoice


def list_store_invoices(actor, store_id, args, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    query = queries.apply_invoice_filters(queries.store_invoices(store_id), args, now)
    return queries.paginate(query, args, queries.INVOICE_SORT_COLUMNS, lambda invoice: invoice.to_dict(now=now))


def list_customer_invoices(actor, args, now=None):
    now = now or utcnow()
    verify_customer(actor)
    query = queries.apply_invoice_filters(queries.customer_invoices(actor.id), args, now)
    return queries.paginate(query, args, queries.INVOICE_SORT_COLUMNS,
                            lambda invoice: invoice.to_dict(now=now, include_record=True))


def get_store_invoice_stats(actor, store_id, now=None):
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    days = current_app.config.get('INVOICE_DUE_SOON_DAYS', 7)
    return queries.invoice_stats(queries.store_invoices(store_id), days, now or utcnow())


def get_customer_invoice_stats(actor, now=None):
    verify_customer(actor)
    days = current_app.config.get('INVOICE_DUE_SOON_DAYS', 7)
    return queries.invoice_stats(queries.customer_invoices(actor.id), days, now or utcnow())


def get_overdue_invoices(actor, store_id, now=None):
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    return queries.overdue_invoices(queries.store_invoices(store_id), now or utcnow()).all()


def get_due_soon_invoices(actor, store_id, days=None, now=None):
    verify_store_permission(actor, store_id, Permission.VIEW_INVOICES)
    if days is None:
        days = current_app.config.get('INVOICE_DUE_SOON_DAYS', 7)
    if days < 1:
        raise ValidationError('days must be at least 1', field='days')
    return queries.due_soon_invoices(queries.store_invoices(store_id), days, now or utcnow()).all()
