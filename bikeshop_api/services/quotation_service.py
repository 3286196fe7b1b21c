# bikeshop_api/services/quotation_service.py
"""
Quotation lifecycle: create, edit, send, approve, reject and expire.

Every public function here is one unit of work. It checks permissions,
loads what it needs, changes the quotation in memory and commits once.
Failures are raised as ServiceError subclasses and the request handler
rolls the session back.
"""

import logging

from flask import current_app

from ..models import db, Quotation, ServiceRequest, Permission, QuotationStatus, RequestStatus
from ..models.quotation import OPEN_STATUSES
from . import money, queries
from .date_utils import utcnow, parse_datetime, add_days
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


def _resolve_valid_until(valid_until=None, validity_days=None, now=None):
    now = now or utcnow()
    if valid_until is not None:
        resolved = parse_datetime(valid_until, 'valid_until')
    else:
        if validity_days is None:
            validity_days = current_app.config.get('DEFAULT_QUOTATION_VALIDITY_DAYS', 30)
        if isinstance(validity_days, bool) or not isinstance(validity_days, int) or validity_days < 1:
            raise ValidationError('validity_days must be a positive whole number', field='validity_days')
        resolved = add_days(validity_days, now)
    if resolved <= now:
        raise ValidationError('valid_until must be in the future', field='valid_until')
    return resolved


def _has_active_quotation(service_request_id, now, exclude_id=None):
    query = Quotation.query.filter(
        Quotation.service_request_id == service_request_id,
        Quotation.status.in_(OPEN_STATUSES),
        Quotation.valid_until >= now,
    )
    if exclude_id is not None:
        query = query.filter(Quotation.id != exclude_id)
    return query.first() is not None


def _load(quotation_id, lock=False):
    query = Quotation.query.filter(Quotation.id == quotation_id)
    if lock:
        query = query.with_for_update()
    quotation = query.first()
    if quotation is None:
        raise NotFoundError('Quotation not found')
    return quotation


def _load_for_store(store_id, quotation_id, lock=False):
    quotation = _load(quotation_id, lock=lock)
    if quotation.service_request.store_id != store_id:
        raise ForbiddenError('Quotation does not belong to this store')
    return quotation


def _load_for_customer(actor, quotation_id, lock=False):
    quotation = _load(quotation_id, lock=lock)
    verify_request_owner(actor, quotation.service_request, 'Quotation does not belong to customer')
    return quotation


def expire_quotation(quotation, now=None):
    """
    Store the expired status on a stale draft or sent quotation.

    A service request still waiting on this quotation (status ``quoted``)
    becomes ``expired`` as well. Returns False when nothing changed.
    """
    if not quotation.mark_expired(now):
        return False
    service_request = quotation.service_request
    if service_request is not None and service_request.status == RequestStatus.QUOTED.value:
        service_request.status = RequestStatus.EXPIRED.value
    logger.info(f"Quotation {quotation.quotation_number} expired")
    return True


def _expire_on_read(quotation, now):
    if expire_quotation(quotation, now):
        db.session.commit()


def create_quotation(actor, store_id, service_request_id, line_items, tax_rate=0,
                     valid_until=None, validity_days=None, notes=None, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.CREATE_QUOTATIONS)

    items = money.parse_line_items(line_items)
    rate = money.validate_tax_rate(0 if tax_rate is None else tax_rate)
    expires_at = _resolve_valid_until(valid_until, validity_days, now)
    notes = _clean_notes(notes)

    service_request = db.session.get(ServiceRequest, queries.parse_id(service_request_id, 'service_request_id'))
    if service_request is None:
        raise NotFoundError('Service request not found')
    if service_request.store_id != store_id:
        raise ForbiddenError('Service request does not belong to this store')
    if not service_request.can_be_quoted():
        raise ConflictError('Service request cannot be quoted in its current status')
    if _has_active_quotation(service_request.id, now):
        raise ConflictError('There is already an active quotation for this service request')

    quotation = Quotation(
        service_request_id=service_request.id,
        created_by_id=actor.id,
        valid_until=expires_at,
        status=QuotationStatus.DRAFT.value,
        notes=notes,
    )
    quotation.set_pricing(items, rate)

    insert_with_unique_number(quotation, 'quotation_number', Quotation.generate_quotation_number, now=now)
    logger.info(f"Quotation {quotation.quotation_number} created for service request {service_request.id} by user {actor.id}")
    return quotation


def get_quotation(actor, store_id, quotation_id, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.VIEW_QUOTATIONS)
    quotation = _load_for_store(store_id, quotation_id)
    _expire_on_read(quotation, now)
    return quotation


def get_customer_quotation(actor, quotation_id, now=None):
    now = now or utcnow()
    verify_customer(actor)
    quotation = _load_for_customer(actor, quotation_id)
    _expire_on_read(quotation, now)
    return quotation


def _start_edit(quotation, now):
    """Guard every edit; a rejected quotation goes back to draft for rework."""
    if not quotation.can_be_edited():
        logger.warning(f"Edit refused for quotation {quotation.quotation_number} in status {quotation.status}")
        raise ConflictError(f'Quotation cannot be edited in status {quotation.status}')
    if quotation.is_rejected():
        if _has_active_quotation(quotation.service_request_id, now, exclude_id=quotation.id):
            raise ConflictError('There is already an active quotation for this service request')
        quotation.status = QuotationStatus.DRAFT.value
        logger.info(f"Rejected quotation {quotation.quotation_number} reopened as draft")


def update_quotation(actor, store_id, quotation_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_QUOTATIONS)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    editable = {'line_items', 'tax_rate', 'valid_until', 'validity_days', 'notes'}
    if not editable & set(data):
        raise ValidationError(f"Provide at least one of: {', '.join(sorted(editable))}")

    quotation = _load_for_store(store_id, quotation_id, lock=True)
    _start_edit(quotation, now)

    if 'line_items' in data:
        items = money.parse_line_items(data['line_items'])
        quotation.set_pricing(items, data.get('tax_rate'))
    elif 'tax_rate' in data:
        quotation.tax_rate = data['tax_rate']
    if 'valid_until' in data or 'validity_days' in data:
        quotation.valid_until = _resolve_valid_until(data.get('valid_until'), data.get('validity_days'), now)
    if 'notes' in data:
        quotation.notes = _clean_notes(data['notes'])

    db.session.commit()
    logger.info(f"Quotation {quotation.quotation_number} updated by user {actor.id}")
    return quotation


def add_line_item(actor, store_id, quotation_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_QUOTATIONS)
    quotation = _load_for_store(store_id, quotation_id, lock=True)
    _start_edit(quotation, now)
    item = quotation.add_line_item(money.LineItem.from_payload(data))
    db.session.commit()
    logger.info(f"Line item {item.id} added to quotation {quotation.quotation_number}")
    return quotation


def update_line_item(actor, store_id, quotation_id, item_id, data, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_QUOTATIONS)
    quotation = _load_for_store(store_id, quotation_id, lock=True)
    _start_edit(quotation, now)
    quotation.update_line_item(item_id, data)
    db.session.commit()
    return quotation


def remove_line_item(actor, store_id, quotation_id, item_id, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_QUOTATIONS)
    quotation = _load_for_store(store_id, quotation_id, lock=True)
    _start_edit(quotation, now)
    quotation.remove_line_item(item_id)
    db.session.commit()
    logger.info(f"Line item {item_id} removed from quotation {quotation.quotation_number}")
    return quotation


def _refuse_if_expired(quotation, now):
    if quotation.needs_expiry(now):
        expire_quotation(quotation, now)
        db.session.commit()
    if quotation.is_expired(now):
        logger.warning(f"Quotation {quotation.quotation_number} is past its validity")
        raise ConflictError('Quotation has expired')


def send_quotation(actor, store_id, quotation_id, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.UPDATE_QUOTATIONS)
    quotation = _load_for_store(store_id, quotation_id, lock=True)
    if not quotation.can_be_sent(now):
        if quotation.is_draft():
            _refuse_if_expired(quotation, now)
        raise ConflictError(f'Only draft quotations can be sent (current status: {quotation.status})')

    quotation.status = QuotationStatus.SENT.value
    service_request = quotation.service_request
    if service_request.status == RequestStatus.PENDING.value:
        service_request.status = RequestStatus.QUOTED.value
    db.session.commit()
    logger.info(f"Quotation {quotation.quotation_number} sent to customer {service_request.customer_id}")
    return quotation


def _resolve(actor, quotation_id, outcome, request_status, now):
    verify_customer(actor)
    quotation = _load_for_customer(actor, quotation_id, lock=True)
    if outcome == QuotationStatus.APPROVED.value:
        allowed = quotation.can_be_approved(now)
    else:
        allowed = quotation.can_be_rejected(now)
    if not allowed:
        if quotation.needs_expiry(now):
            _refuse_if_expired(quotation, now)
        raise ConflictError(f'Only sent quotations can be {outcome} (current status: {quotation.status})')

    quotation.status = outcome
    quotation.service_request.status = request_status
    db.session.commit()
    logger.info(f"Quotation {quotation.quotation_number} {outcome} by customer {actor.id}")
    return quotation


def approve_quotation(actor, quotation_id, now=None):
    return _resolve(actor, quotation_id, QuotationStatus.APPROVED.value, RequestStatus.APPROVED.value, now or utcnow())


def reject_quotation(actor, quotation_id, now=None):
    return _resolve(actor, quotation_id, QuotationStatus.REJECTED.value, RequestStatus.PENDING.value, now or utcnow())


def list_store_quotations(actor, store_id, args, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.VIEW_QUOTATIONS)
    query = queries.apply_quotation_filters(queries.store_quotations(store_id), args, now)
    return queries.paginate(query, args, queries.QUOTATION_SORT_COLUMNS,
                            lambda quotation: quotation.to_dict(now=now))


def list_customer_quotations(actor, args, now=None):
    now = now or utcnow()
    verify_customer(actor)
    query = queries.apply_quotation_filters(queries.customer_quotations(actor.id), args, now)
    return queries.paginate(query, args, queries.QUOTATION_SORT_COLUMNS,
                            lambda quotation: quotation.to_dict(now=now, include_request=True))


def get_store_quotation_stats(actor, store_id, now=None):
    verify_store_permission(actor, store_id, Permission.VIEW_QUOTATIONS)
    days = current_app.config.get('QUOTATION_EXPIRING_SOON_DAYS', 3)
    return queries.quotation_stats(queries.store_quotations(store_id), days, now or utcnow())


def get_customer_quotation_stats(actor, now=None):
    verify_customer(actor)
    return queries.customer_quotation_stats(queries.customer_quotations(actor.id), now or utcnow())


def get_expiring_quotations(actor, store_id, days=None, now=None):
    now = now or utcnow()
    verify_store_permission(actor, store_id, Permission.VIEW_QUOTATIONS)
    if days is None:
        days = current_app.config.get('QUOTATION_EXPIRING_SOON_DAYS', 3)
    if days < 1:
        raise ValidationError('days must be at least 1', field='days')
    return queries.expiring_quotations(queries.store_quotations(store_id), days, now).all()
