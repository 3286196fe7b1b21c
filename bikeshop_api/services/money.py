# bikeshop_api/services/money.py
"""
Line-item arithmetic shared by quotations and invoices.

All amounts are ``Decimal`` values with two decimal places. Every line total
is rounded on its own before it is added to the subtotal, so a document total
matches what a person would get adding up the printed lines.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError, NotFoundError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

MAX_DESCRIPTION_LENGTH = 500


def round2(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, field):
    """
    Convert user input into a ``Decimal``.

    Floats go through ``str()`` first so ``0.1`` becomes ``Decimal('0.1')``
    and not its binary expansion. Booleans are rejected even though they are
    ints in Python.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field=field)
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'{field} must be a number', field=field)
    if not result.is_finite():
        raise ValidationError(f'{field} must be a finite number', field=field)
    return result


def to_money(value, field):
    return round2(to_decimal(value, field))


def validate_tax_rate(value):
    rate = round2(to_decimal(value, 'tax_rate'))
    if rate < 0 or rate > HUNDRED:
        raise ValidationError('Tax rate must be between 0 and 100', field='tax_rate')
    return rate


def new_line_item_id():
    return f"item_{uuid.uuid4().hex}"


def _clean_description(description):
    if not isinstance(description, str) or not description.strip():
        raise ValidationError('Line item description is required', field='description')
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f'Line item description cannot exceed {MAX_DESCRIPTION_LENGTH} characters',
            field='description'
        )
    return description


def _clean_quantity(quantity):
    quantity = to_decimal(quantity, 'quantity')
    if quantity <= 0:
        raise ValidationError('Line item quantity must be a positive number', field='quantity')
    return quantity.to_integral_value() if quantity == quantity.to_integral_value() else quantity


def _clean_unit_price(unit_price):
    unit_price = to_money(unit_price, 'unit_price')
    if unit_price < 0:
        raise ValidationError('Line item unit price must be a non-negative number', field='unit_price')
    return unit_price


@dataclass(frozen=True)
class LineItem:
    id: str
    description: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self):
        return round2(self.quantity * self.unit_price)

    @classmethod
    def create(cls, description, quantity, unit_price, item_id=None):
        return cls(
            id=item_id or new_line_item_id(),
            description=_clean_description(description),
            quantity=_clean_quantity(quantity),
            unit_price=_clean_unit_price(unit_price),
        )

    @classmethod
    def from_payload(cls, data):
        """Build a new line item from request data, ignoring any client id or total."""
        if not isinstance(data, dict):
            raise ValidationError('Each line item must be an object', field='line_items')
        return cls.create(
            data.get('description'),
            data.get('quantity'),
            data.get('unit_price', data.get('price')),
        )

    @classmethod
    def from_stored(cls, data):
        return cls(
            id=data['id'],
            description=data['description'],
            quantity=Decimal(data['quantity']),
            unit_price=Decimal(data['unit_price']),
        )

    def merged(self, updates):
        """Return a copy with ``updates`` applied; the id never changes. ``price`` is accepted for ``unit_price``."""
        unknown = set(updates) - {'description', 'quantity', 'unit_price', 'price'}
        if unknown:
            raise ValidationError(f"Unknown line item fields: {', '.join(sorted(unknown))}", field='line_items')
        return LineItem.create(
            updates.get('description', self.description),
            updates.get('quantity', self.quantity),
            updates.get('unit_price', updates.get('price', self.unit_price)),
            item_id=self.id,
        )

    def to_stored(self):
        return {
            'id': self.id,
            'description': self.description,
            'quantity': str(self.quantity),
            'unit_price': str(self.unit_price),
            'total': str(self.total),
        }


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_totals(items, tax_rate):
    """subtotal = sum of rounded line totals, tax = round2(subtotal * rate / 100)."""
    subtotal = sum((item.total for item in items), ZERO)
    tax_amount = round2(subtotal * Decimal(tax_rate) / HUNDRED)
    return Totals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def parse_line_items(payload):
    if not isinstance(payload, list) or not payload:
        raise ValidationError('At least one line item is required', field='line_items')
    return [LineItem.from_payload(entry) for entry in payload]


def add_item(items, item):
    return list(items) + [item]


def remove_item(items, item_id):
    remaining = [item for item in items if item.id != item_id]
    if len(remaining) == len(items):
        raise NotFoundError(f'Line item {item_id} not found')
    if not remaining:
        raise ValidationError('A document must keep at least one line item', field='line_items')
    return remaining


def update_item(items, item_id, updates):
    if not isinstance(updates, dict) or not updates:
        raise ValidationError('No line item changes provided', field='line_items')
    found = False
    result = []
    for item in items:
        if item.id == item_id:
            item = item.merged(updates)
            found = True
        result.append(item)
    if not found:
        raise NotFoundError(f'Line item {item_id} not found')
    return result


def format_money(amount):
    return str(round2(amount))
