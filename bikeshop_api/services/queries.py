# bikeshop_api/services/queries.py
"""
Filtering, pagination and statistics for quotations and invoices.

Store views join through the service request to scope by ``store_id``;
customer views join the same way on ``customer_id``. Nothing here commits.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, and_, or_, not_, case

from ..models import db, Quotation, Invoice, ServiceRequest, ServiceRecord, QuotationStatus, PaymentStatus
from ..models.quotation import OPEN_STATUSES as OPEN_QUOTATION_STATUSES
from . import money
from .date_utils import utcnow, parse_datetime
from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGE_SIZE = 100

QUOTATION_SORT_COLUMNS = {
    'created_at': Quotation.created_at,
    'updated_at': Quotation.updated_at,
    'valid_until': Quotation.valid_until,
    'quotation_number': Quotation.quotation_number,
    'status': Quotation.status,
    'total': Quotation._total,
}

INVOICE_SORT_COLUMNS = {
    'created_at': Invoice.created_at,
    'updated_at': Invoice.updated_at,
    'due_date': Invoice.due_date,
    'invoice_number': Invoice.invoice_number,
    'payment_status': Invoice.payment_status,
    'total': Invoice._total,
    'paid_amount': Invoice._paid_amount,
}

UNPAID_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.OVERDUE.value)
OPEN_INVOICE_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value)


def _parse_int(args, name, default=None, minimum=1):
    raw = args.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer', field=name)
    if value < minimum:
        raise ValidationError(f'{name} must be at least {minimum}', field=name)
    return value


def parse_id(value, field):
    """Ids in JSON bodies must be positive integers; numeric strings are accepted."""
    if isinstance(value, bool) or value in (None, ''):
        raise ValidationError(f'{field} is required', field=field)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field=field)
    if parsed < 1 or (isinstance(value, float) and value != parsed):
        raise ValidationError(f'{field} must be a positive integer', field=field)
    return parsed


def _parse_status_list(raw, allowed, field):
    if raw in (None, ''):
        return None
    values = raw if isinstance(raw, (list, tuple)) else str(raw).split(',')
    statuses = [value.strip() for value in values if value and value.strip()]
    invalid = [status for status in statuses if status not in allowed]
    if invalid:
        raise ValidationError(f"Invalid {field}: {', '.join(invalid)}", field=field)
    return statuses


# --- Scopes ---

def store_quotations(store_id):
    return Quotation.query.join(ServiceRequest, Quotation.service_request_id == ServiceRequest.id) \
        .filter(ServiceRequest.store_id == store_id)


def customer_quotations(customer_id):
    return Quotation.query.join(ServiceRequest, Quotation.service_request_id == ServiceRequest.id) \
        .filter(ServiceRequest.customer_id == customer_id)


def store_invoices(store_id):
    return Invoice.query.join(ServiceRecord, Invoice.service_record_id == ServiceRecord.id) \
        .join(ServiceRequest, ServiceRecord.service_request_id == ServiceRequest.id) \
        .filter(ServiceRequest.store_id == store_id)


def customer_invoices(customer_id):
    return Invoice.query.join(ServiceRecord, Invoice.service_record_id == ServiceRecord.id) \
        .join(ServiceRequest, ServiceRecord.service_request_id == ServiceRequest.id) \
        .filter(ServiceRequest.customer_id == customer_id)


# --- Derived statuses ---
#
# SQL counterparts of Quotation.effective_status and
# Invoice.expected_payment_status, so filters and grouped counts agree with
# the status each serialized document reports.

def _quotation_past_validity(now):
    return and_(Quotation.status.in_(OPEN_QUOTATION_STATUSES), Quotation.valid_until < now)


def quotation_status_condition(status, now):
    if status == QuotationStatus.EXPIRED.value:
        return or_(Quotation.status == status, _quotation_past_validity(now))
    if status in OPEN_QUOTATION_STATUSES:
        return and_(Quotation.status == status, Quotation.valid_until >= now)
    return Quotation.status == status


def effective_quotation_status(now):
    return case((_quotation_past_validity(now), QuotationStatus.EXPIRED.value), else_=Quotation.status)


def _quotation_is_expired(now):
    return or_(Quotation.status == QuotationStatus.EXPIRED.value, Quotation.valid_until < now)


def _expiring_condition(days, now):
    return and_(
        Quotation.status.in_(OPEN_QUOTATION_STATUSES),
        Quotation.valid_until > now,
        Quotation.valid_until <= now + timedelta(days=days),
    )


def _invoice_past_due(now):
    return and_(Invoice.payment_status.in_(UNPAID_STATUSES), Invoice.due_date < now)


def invoice_status_condition(status, now):
    if status == PaymentStatus.OVERDUE.value:
        return _invoice_past_due(now)
    if status == PaymentStatus.PENDING.value:
        return and_(Invoice.payment_status.in_(UNPAID_STATUSES), Invoice.due_date >= now)
    return Invoice.payment_status == status


def effective_payment_status(now):
    return case(
        (_invoice_past_due(now), PaymentStatus.OVERDUE.value),
        (Invoice.payment_status.in_(UNPAID_STATUSES), PaymentStatus.PENDING.value),
        else_=Invoice.payment_status,
    )


# --- Filters ---

def _parse_bool(args, name):
    raw = args.get(name)
    if raw in (None, ''):
        return None
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ('true', '1', 'yes'):
        return True
    if value in ('false', '0', 'no'):
        return False
    raise ValidationError(f'{name} must be true or false', field=name)


def _apply_flag(query, args, name, condition):
    flag = _parse_bool(args, name)
    if flag is None:
        return query
    return query.filter(condition if flag else not_(condition))


def _apply_date_range(query, column, args, prefix='date'):
    """``<prefix>_from`` starts at the beginning of its day, ``<prefix>_to`` runs to the end of it."""
    date_from, date_to = f'{prefix}_from', f'{prefix}_to'
    if args.get(date_from):
        query = query.filter(column >= parse_datetime(args[date_from], date_from, end_of_day=False))
    if args.get(date_to):
        query = query.filter(column <= parse_datetime(args[date_to], date_to))
    return query


def apply_quotation_filters(query, args, now=None):
    now = now or utcnow()
    statuses = _parse_status_list(args.get('status'), [s.value for s in QuotationStatus], 'status')
    if statuses:
        query = query.filter(or_(*[quotation_status_condition(status, now) for status in statuses]))
    service_request_id = _parse_int(args, 'service_request_id')
    if service_request_id:
        query = query.filter(Quotation.service_request_id == service_request_id)
    created_by_id = _parse_int(args, 'created_by_id')
    if created_by_id:
        query = query.filter(Quotation.created_by_id == created_by_id)

    query = _apply_date_range(query, Quotation.created_at, args)
    query = _apply_date_range(query, Quotation.valid_until, args, prefix='valid_until')
    query = _apply_flag(query, args, 'is_expired', _quotation_is_expired(now))
    expiring_days = current_app.config.get('QUOTATION_EXPIRING_SOON_DAYS', 3)
    return _apply_flag(query, args, 'is_expiring_soon', _expiring_condition(expiring_days, now))


def apply_invoice_filters(query, args, now=None):
    now = now or utcnow()
    statuses = _parse_status_list(args.get('payment_status'), [s.value for s in PaymentStatus], 'payment_status')
    if statuses:
        query = query.filter(or_(*[invoice_status_condition(status, now) for status in statuses]))
    for name, column in (('service_record_id', Invoice.service_record_id),
                         ('quotation_id', Invoice.quotation_id),
                         ('created_by_id', Invoice.created_by_id)):
        value = _parse_int(args, name)
        if value:
            query = query.filter(column == value)
    invoice_number = (args.get('invoice_number') or '').strip()
    if invoice_number:
        query = query.filter(Invoice.invoice_number.ilike(f'%{invoice_number}%'))

    query = _apply_date_range(query, Invoice.created_at, args)
    query = _apply_date_range(query, Invoice.due_date, args, prefix='due_date')
    return _apply_flag(query, args, 'is_overdue', _invoice_past_due(now))


# --- Pagination ---

def paginate(query, args, sort_columns, serialize):
    """
    Sort and page ``query`` according to request arguments.

    Without a ``page`` argument every matching row comes back as a single
    page. ``limit`` is capped by MAX_PAGE_SIZE.
    """
    sort_by = args.get('sort_by') or 'created_at'
    if sort_by not in sort_columns:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(sorted(sort_columns))}", field='sort_by'
        )
    sort_order = (args.get('sort_order') or 'desc').lower()
    if sort_order not in ('asc', 'desc'):
        raise ValidationError('sort_order must be asc or desc', field='sort_order')

    column = sort_columns[sort_by]
    query = query.order_by(column.asc() if sort_order == 'asc' else column.desc())

    max_page_size = current_app.config.get('MAX_PAGE_SIZE', DEFAULT_MAX_PAGE_SIZE)
    page = _parse_int(args, 'page')
    limit = _parse_int(args, 'limit', default=20)
    if limit > max_page_size:
        raise ValidationError(f'limit cannot exceed {max_page_size}', field='limit')

    if page is None:
        items = query.all()
        return {
            'items': [serialize(item) for item in items],
            'pagination': {
                'page': 1,
                'limit': len(items),
                'total': len(items),
                'total_pages': 1,
                'has_next': False,
                'has_prev': False,
            }
        }

    result = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        'items': [serialize(item) for item in result.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': result.total,
            'total_pages': result.pages,
            'has_next': result.has_next,
            'has_prev': result.has_prev,
        }
    }


# --- Time based listings ---

def expiring_quotations(query, days, now=None):
    now = now or utcnow()
    return query.filter(_expiring_condition(days, now)).order_by(Quotation.valid_until.asc())


def overdue_invoices(query, now=None):
    now = now or utcnow()
    return query.filter(_invoice_past_due(now)).order_by(Invoice.due_date.asc())


def due_soon_invoices(query, days, now=None):
    now = now or utcnow()
    return query.filter(
        Invoice.payment_status.in_(OPEN_INVOICE_STATUSES),
        Invoice.due_date >= now,
        Invoice.due_date <= now + timedelta(days=days),
    ).order_by(Invoice.due_date.asc())


# --- Statistics ---

def _sum(value):
    return money.to_money(value or 0, 'sum')


def _grouped(query, status_expression, *columns):
    """
    Row count and per-column sums for each derived status.

    The status is computed in a subquery so the outer GROUP BY works on a
    plain column on every backend.
    """
    labelled = [column.label(f'value_{index}') for index, column in enumerate(columns)]
    subquery = query.with_entities(status_expression.label('status'), *labelled).subquery()
    sums = [func.sum(subquery.c[f'value_{index}']) for index in range(len(columns))]
    return db.session.query(subquery.c.status, func.count(), *sums).group_by(subquery.c.status).all()


def _quotation_totals(query, now):
    by_status = {status.value: 0 for status in QuotationStatus}
    total = 0
    total_value = money.ZERO
    for status, count, value in _grouped(query, effective_quotation_status(now), Quotation._total):
        by_status[status] = count
        total += count
        total_value += _sum(value)
    return by_status, total, total_value


def quotation_stats(query, expiring_days, now=None):
    now = now or utcnow()
    by_status, total, total_value = _quotation_totals(query, now)
    return {
        'total': total,
        'by_status': by_status,
        'total_value': money.format_money(total_value),
        'average_value': money.format_money(total_value / total if total else 0),
        'expiring_soon': expiring_quotations(query, expiring_days, now).order_by(None).count(),
    }


def customer_quotation_stats(query, now=None, recent_count=5):
    now = now or utcnow()
    by_status, total, total_value = _quotation_totals(query, now)
    recent = query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).limit(recent_count).all()
    return {
        'total': total,
        'by_status': by_status,
        'total_value': money.format_money(total_value),
        'recent': [quotation.to_dict(now=now) for quotation in recent],
    }


def invoice_stats(query, due_soon_days, now=None):
    now = now or utcnow()
    by_status = {status.value: 0 for status in PaymentStatus}
    total = 0
    total_value = money.ZERO
    total_paid = money.ZERO
    total_outstanding = money.ZERO
    billed = 0
    rows = _grouped(query, effective_payment_status(now), Invoice._total, Invoice._paid_amount)
    for status, count, value, paid in rows:
        by_status[status] = count
        total += count
        if status == PaymentStatus.CANCELLED.value:
            continue
        billed += count
        total_value += _sum(value)
        total_paid += _sum(paid)
        total_outstanding += _sum(value) - _sum(paid)

    return {
        'total': total,
        'by_status': by_status,
        'total_value': money.format_money(total_value),
        'total_paid': money.format_money(total_paid),
        'total_outstanding': money.format_money(total_outstanding),
        'average_value': money.format_money(total_value / billed if billed else 0),
        'overdue': by_status[PaymentStatus.OVERDUE.value],
        'due_soon': due_soon_invoices(query, due_soon_days, now).order_by(None).count(),
    }
