# bikeshop_api/services/date_utils.py
import math
import re
import secrets
import time
import logging
from datetime import datetime, timedelta, timezone

import pytz
from flask import current_app, has_app_context

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/Los_Angeles'
DATE_ONLY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def get_shop_timezone():
    """Timezone used for document numbers and for naive input dates."""
    name = DEFAULT_TIMEZONE
    if has_app_context():
        name = current_app.config.get('SHOP_TIMEZONE', DEFAULT_TIMEZONE)
    return pytz.timezone(name)


def utcnow():
    """Current time as a naive UTC datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt):
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.utc).replace(tzinfo=None)


def parse_datetime(value, field, end_of_day=True):
    """
    Parse an ISO-8601 value from a request body into naive UTC.

    Values with an offset (or a trailing 'Z') are converted to UTC. Values
    without one are read as shop-local time. A bare date (2025-05-21) means
    the end of that day in the shop's timezone, or its start when
    ``end_of_day`` is False.
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} must be an ISO-8601 date', field=field)

    date_str = value.strip()
    shop_tz = get_shop_timezone()
    try:
        if DATE_ONLY_PATTERN.match(date_str):
            year, month, day = map(int, date_str.split('-'))
            if end_of_day:
                naive_dt = datetime(year, month, day, 23, 59, 59)
            else:
                naive_dt = datetime(year, month, day)
            return to_naive_utc(shop_tz.localize(naive_dt))

        if date_str.endswith('Z'):
            date_str = date_str[:-1] + '+00:00'
        dt = datetime.fromisoformat(date_str)
    except ValueError as e:
        logger.warning(f"Rejected {field} value '{value}': {e}")
        raise ValidationError(f'{field} must be an ISO-8601 date', field=field)

    if dt.tzinfo is None:
        dt = shop_tz.localize(dt)
    return to_naive_utc(dt)


def parse_past_datetime(value, field, now=None):
    """
    Parse the time of something that has already happened, like a payment.

    A bare date stands for the latest moment of that day that is not after
    ``now``: today gives ``now`` and an earlier day gives its last second.
    A date still ahead keeps its first second so the caller can reject it.
    """
    now = now or utcnow()
    if isinstance(value, str) and DATE_ONLY_PATTERN.match(value.strip()):
        start = parse_datetime(value, field, end_of_day=False)
        if start > now:
            return start
        return min(parse_datetime(value, field), now)
    return parse_datetime(value, field)


def format_datetime_for_response(dt):
    """Naive UTC datetimes are rendered with an explicit +00:00 offset."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def days_until(target, now=None):
    """Whole days until ``target``, rounded up; negative once it has passed."""
    now = now or utcnow()
    return math.ceil((target - now) / timedelta(days=1))


def add_days(days, now=None):
    return (now or utcnow()) + timedelta(days=days)


def generate_document_number(prefix, now=None, attempt=0):
    """
    Build a document number such as ``QUO-20250521-483920``.

    The date is the shop-local date. The first attempt takes its suffix from
    the clock (last six digits of the microsecond timestamp); retries after a
    unique-constraint violation use a random suffix instead.
    """
    now = now or utcnow()
    local_date = pytz.utc.localize(now).astimezone(get_shop_timezone()).date()

    if attempt == 0:
        suffix = (time.time_ns() // 1000) % 1_000_000
    else:
        suffix = secrets.randbelow(1_000_000)

    return f"{prefix}-{local_date:%Y%m%d}-{suffix:06d}"
