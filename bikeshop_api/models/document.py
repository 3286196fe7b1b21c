# bikeshop_api/models/document.py

from datetime import datetime
from decimal import Decimal

from .base import db
from ..services import money


class PricedDocumentMixin:
    """
    Line items plus the three derived amounts shared by quotations and invoices.

    subtotal, tax_amount and total live in private columns and are only ever
    written by ``_recalculate``. Callers change a document through the line
    item methods or the ``tax_rate`` setter.
    """

    _line_items = db.Column('line_items', db.JSON, nullable=False, default=list)
    _tax_rate = db.Column('tax_rate', db.Numeric(5, 2), nullable=False, default=0)
    _subtotal = db.Column('subtotal', db.Numeric(10, 2), nullable=False, default=0)
    _tax_amount = db.Column('tax_amount', db.Numeric(10, 2), nullable=False, default=0)
    _total = db.Column('total', db.Numeric(10, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def items(self):
        return [money.LineItem.from_stored(entry) for entry in (self._line_items or [])]

    @property
    def line_items(self):
        return [dict(entry) for entry in (self._line_items or [])]

    @property
    def tax_rate(self):
        return money.round2(self._tax_rate or 0)

    @tax_rate.setter
    def tax_rate(self, value):
        self._tax_rate = money.validate_tax_rate(value)
        self._recalculate(self.items)

    @property
    def subtotal(self):
        return money.round2(self._subtotal or 0)

    @property
    def tax_amount(self):
        return money.round2(self._tax_amount or 0)

    @property
    def total(self):
        return money.round2(self._total or 0)

    def set_pricing(self, items, tax_rate=None):
        """Replace every line item (and optionally the tax rate) in one step."""
        if not items:
            raise money.ValidationError('At least one line item is required', field='line_items')
        if tax_rate is not None:
            self._tax_rate = money.validate_tax_rate(tax_rate)
        self._recalculate(items)

    def add_line_item(self, item):
        self._recalculate(money.add_item(self.items, item))
        return item

    def remove_line_item(self, item_id):
        self._recalculate(money.remove_item(self.items, item_id))

    def update_line_item(self, item_id, updates):
        items = money.update_item(self.items, item_id, updates)
        self._recalculate(items)
        return next(item for item in items if item.id == item_id)

    def _recalculate(self, items):
        totals = money.compute_totals(items, self._tax_rate or Decimal('0'))
        # A fresh list each time so the JSON column registers the change
        self._line_items = [item.to_stored() for item in items]
        self._subtotal = totals.subtotal
        self._tax_amount = totals.tax_amount
        self._total = totals.total

    def pricing_dict(self):
        return {
            'line_items': self.line_items,
            'subtotal': money.format_money(self.subtotal),
            'tax_rate': money.format_money(self.tax_rate),
            'tax_amount': money.format_money(self.tax_amount),
            'total': money.format_money(self.total),
        }
