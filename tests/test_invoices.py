from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from bikeshop_api.models import db, Invoice, PaymentStatus, ServiceRecordStatus
from bikeshop_api.services import invoice_service, quotation_service
from bikeshop_api.services.errors import ValidationError, NotFoundError, ConflictError, ForbiddenError

from conftest import NOW, STANDARD_LINES, get_user

SERVICE_LINE = [{"description": "Full service", "quantity": 1, "unit_price": "50.00"}]


@pytest.fixture
def staff(ctx, seed):
    return get_user(seed.staff_id)


@pytest.fixture
def customer(ctx, seed):
    return get_user(seed.customer_id)


def _create(actor, seed, now=NOW, **overrides):
    params = {
        "service_record_id": seed.record_id,
        "line_items": SERVICE_LINE,
        "tax_rate": "8.5",
        "now": now,
    }
    params.update(overrides)
    return invoice_service.create_invoice(actor, seed.store_id, **params)


def _approved_quotation(staff, customer, seed):
    quotation = quotation_service.create_quotation(
        staff, seed.store_id, seed.request_id, STANDARD_LINES, tax_rate="8.5", now=NOW
    )
    quotation_service.send_quotation(staff, seed.store_id, quotation.id, now=NOW)
    return quotation_service.approve_quotation(customer, quotation.id, now=NOW)


def _pay(staff, seed, invoice, amount, **kwargs):
    kwargs.setdefault("now", NOW)
    return invoice_service.record_payment(staff, seed.store_id, invoice.id, amount, **kwargs)


def test_create_invoice_from_line_items(staff, seed) -> None:
    invoice = _create(staff, seed)

    assert invoice.invoice_number.startswith("INV-20250521-")
    assert invoice.payment_status == PaymentStatus.PENDING.value
    assert invoice.total == Decimal("54.25")
    assert invoice.paid_amount == Decimal("0.00")
    assert invoice.due_date == NOW + timedelta(days=30)
    assert invoice.payments == []
    assert invoice.quotation_id is None


def test_create_invoice_copies_an_approved_quotation(staff, customer, seed) -> None:
    quotation = _approved_quotation(staff, customer, seed)

    invoice = _create(staff, seed, quotation_id=quotation.id, line_items=None, tax_rate=None, due_days=14)

    assert invoice.quotation_id == quotation.id
    assert invoice.total == quotation.total == Decimal("162.75")
    assert invoice.tax_rate == Decimal("8.50")
    assert invoice.due_date == NOW + timedelta(days=14)
    assert [item["description"] for item in invoice.line_items] == ["Brake bleed", "Tubeless setup"]
    quotation_ids = {item["id"] for item in quotation.line_items}
    assert not quotation_ids & {item["id"] for item in invoice.line_items}


def test_explicit_line_items_win_over_the_quotation(staff, customer, seed) -> None:
    quotation = _approved_quotation(staff, customer, seed)

    invoice = _create(staff, seed, quotation_id=quotation.id, tax_rate=0)

    assert invoice.total == Decimal("50.00")


def test_quotation_must_be_approved(staff, seed) -> None:
    quotation = quotation_service.create_quotation(staff, seed.store_id, seed.request_id, STANDARD_LINES, now=NOW)

    with pytest.raises(ConflictError):
        _create(staff, seed, quotation_id=quotation.id)


def test_quotation_must_belong_to_the_same_request(staff, customer, seed, make_request) -> None:
    quotation = _approved_quotation(staff, customer, seed)
    _, record_id = make_request()

    with pytest.raises(ConflictError):
        _create(staff, seed, service_record_id=record_id, quotation_id=quotation.id)


def test_record_must_be_completed(staff, seed, make_request) -> None:
    _, record_id = make_request(record_status=ServiceRecordStatus.IN_PROGRESS.value)

    with pytest.raises(ConflictError):
        _create(staff, seed, service_record_id=record_id)


def test_record_can_only_be_invoiced_once(staff, seed) -> None:
    first = _create(staff, seed)

    with pytest.raises(ConflictError):
        _create(staff, seed)

    invoice_service.cancel_invoice(staff, seed.store_id, first.id, reason="Wrong labour rate")
    second = _create(staff, seed)
    assert second.id != first.id
    assert second.invoice_number != first.invoice_number


def test_create_invoice_scoping(staff, seed) -> None:
    with pytest.raises(ForbiddenError):
        _create(staff, seed, service_record_id=seed.other_record_id)
    with pytest.raises(NotFoundError):
        _create(staff, seed, service_record_id=9999)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"line_items": None}, "line_items"),
        ({"line_items": []}, "line_items"),
        ({"due_days": 0}, "due_days"),
        ({"tax_rate": "-1"}, "tax_rate"),
        ({"service_record_id": "abc"}, "service_record_id"),
    ],
)
def test_create_invoice_validates_input(staff, seed, overrides, field) -> None:
    with pytest.raises(ValidationError) as excinfo:
        _create(staff, seed, **overrides)

    assert excinfo.value.field == field
    assert Invoice.query.count() == 0


def test_viewer_cannot_create_invoices(ctx, seed) -> None:
    with pytest.raises(ForbiddenError):
        _create(get_user(seed.viewer_id), seed)


def test_payments_move_the_invoice_to_paid(staff, seed) -> None:
    invoice = _create(staff, seed)

    invoice = _pay(staff, seed, invoice, "25.00")
    assert invoice.payment_status == PaymentStatus.PARTIAL.value
    assert invoice.remaining_amount == Decimal("29.25")

    invoice = _pay(staff, seed, invoice, "29.25", payment_date="2025-05-21T16:00:00Z", notes="Card")
    assert invoice.payment_status == PaymentStatus.PAID.value
    assert invoice.paid_amount == Decimal("54.25")
    assert invoice.paid_date == NOW - timedelta(hours=1)
    assert [entry["notes"] for entry in invoice.payments] == [None, "Card"]
    assert invoice.payments[0]["recorded_by_id"] == seed.staff_id

    with pytest.raises(ConflictError):
        _pay(staff, seed, invoice, "1.00")


def test_overpayment_leaves_the_invoice_untouched(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed), "25.00")

    with pytest.raises(ValidationError) as excinfo:
        _pay(staff, seed, invoice, "30.00")
    db.session.rollback()

    assert excinfo.value.field == "amount"
    stored = db.session.get(Invoice, invoice.id)
    assert stored.paid_amount == Decimal("25.00")
    assert stored.payment_status == PaymentStatus.PARTIAL.value
    assert len(stored.payments) == 1


def test_future_payment_date_is_rejected(staff, seed) -> None:
    invoice = _create(staff, seed)

    with pytest.raises(ValidationError) as excinfo:
        _pay(staff, seed, invoice, "5.00", payment_date="2025-05-22T09:00:00Z")

    assert excinfo.value.field == "payment_date"


def test_payment_dated_today_is_recorded_now(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed), "54.25", payment_date="2025-05-21")

    assert invoice.payment_status == PaymentStatus.PAID.value
    assert invoice.paid_date == NOW
    assert invoice.payments[0]["paid_at"] == "2025-05-21T17:00:00+00:00"


def test_payment_dated_yesterday_uses_the_end_of_that_day(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed), "54.25", payment_date="2025-05-20")

    # 23:59:59 in Los Angeles
    assert invoice.paid_date == datetime(2025, 5, 21, 6, 59, 59)


def test_payment_dated_tomorrow_is_rejected(staff, seed) -> None:
    invoice = _create(staff, seed)

    with pytest.raises(ValidationError) as excinfo:
        _pay(staff, seed, invoice, "5.00", payment_date="2025-05-22")

    assert excinfo.value.field == "payment_date"


def test_partial_invoice_stays_partial_after_due_date(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed, due_days=1), "10.00")

    later = NOW + timedelta(days=5)

    assert invoice.expected_payment_status(later) == PaymentStatus.PARTIAL.value
    assert invoice_service.get_overdue_invoices(staff, seed.store_id, now=later) == []


def test_update_recomputes_totals(staff, seed) -> None:
    invoice = _create(staff, seed)

    invoice = invoice_service.update_invoice(staff, seed.store_id, invoice.id, {
        "line_items": STANDARD_LINES,
        "notes": "Added tubeless",
    }, now=NOW)

    assert invoice.subtotal == Decimal("150.00")
    assert invoice.total == Decimal("162.75")
    assert invoice.notes == "Added tubeless"


def test_update_cannot_drop_total_below_paid_amount(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed), "40.00")

    with pytest.raises(ValidationError):
        invoice_service.update_invoice(staff, seed.store_id, invoice.id, {
            "line_items": [{"description": "Inspection", "quantity": 1, "unit_price": "20.00"}],
        }, now=NOW)
    db.session.rollback()

    assert db.session.get(Invoice, invoice.id).total == Decimal("54.25")


def test_moving_due_date_into_the_past_makes_it_overdue(staff, seed) -> None:
    invoice = _create(staff, seed)

    invoice = invoice_service.update_invoice(staff, seed.store_id, invoice.id, {"due_date": "2025-05-01"}, now=NOW)

    assert invoice.payment_status == PaymentStatus.OVERDUE.value


def test_line_item_operations_on_invoices(staff, seed) -> None:
    invoice = _create(staff, seed)
    first_id = invoice.line_items[0]["id"]

    invoice = invoice_service.add_line_item(
        staff, seed.store_id, invoice.id, {"description": "Chain", "quantity": 1, "unit_price": "30.00"}, now=NOW
    )
    assert invoice.subtotal == Decimal("80.00")

    invoice = invoice_service.update_line_item(staff, seed.store_id, invoice.id, first_id,
                                               {"unit_price": "60.00"}, now=NOW)
    assert invoice.subtotal == Decimal("90.00")

    invoice = invoice_service.remove_line_item(staff, seed.store_id, invoice.id, first_id, now=NOW)
    assert invoice.subtotal == Decimal("30.00")
    assert invoice.total == Decimal("32.55")


def test_paid_invoice_is_frozen(staff, seed) -> None:
    invoice = _pay(staff, seed, _create(staff, seed), "54.25")

    with pytest.raises(ConflictError):
        invoice_service.update_invoice(staff, seed.store_id, invoice.id, {"notes": "late edit"}, now=NOW)
    with pytest.raises(ConflictError):
        invoice_service.cancel_invoice(staff, seed.store_id, invoice.id)


def test_cancel_records_the_reason(staff, seed) -> None:
    invoice = _create(staff, seed, notes="Walk-in")

    invoice = invoice_service.cancel_invoice(staff, seed.store_id, invoice.id, reason="Duplicate")

    assert invoice.payment_status == PaymentStatus.CANCELLED.value
    assert invoice.notes == "Walk-in\nCancelled: Duplicate"
    with pytest.raises(ConflictError):
        invoice_service.cancel_invoice(staff, seed.store_id, invoice.id)
    with pytest.raises(ConflictError):
        _pay(staff, seed, invoice, "1.00")


def test_lookup_by_number_and_customer_access(staff, customer, seed) -> None:
    invoice = _create(staff, seed)

    assert invoice_service.get_invoice_by_number(staff, seed.store_id, invoice.invoice_number).id == invoice.id
    assert invoice_service.get_customer_invoice(customer, invoice.id).id == invoice.id

    with pytest.raises(NotFoundError):
        invoice_service.get_invoice_by_number(staff, seed.store_id, "INV-19990101-000000")
    with pytest.raises(ForbiddenError):
        invoice_service.get_customer_invoice(get_user(seed.other_customer_id), invoice.id)
    with pytest.raises(ForbiddenError):
        invoice_service.get_invoice(get_user(seed.other_owner_id), seed.other_store_id, invoice.id)


def test_listings_and_statistics(staff, customer, seed, make_request) -> None:
    paid = _create(staff, seed)
    _pay(staff, seed, paid, "54.25")

    _, record_id = make_request()
    overdue = _create(staff, seed, service_record_id=record_id, due_days=1)

    _, record_id = make_request()
    cancelled = _create(staff, seed, service_record_id=record_id, line_items=STANDARD_LINES)
    invoice_service.cancel_invoice(staff, seed.store_id, cancelled.id)

    _, record_id = make_request()
    _create(staff, seed, service_record_id=record_id, due_days=5, tax_rate=0)

    later = NOW + timedelta(days=2)

    listing = invoice_service.list_store_invoices(staff, seed.store_id, {"payment_status": "paid,cancelled"}, now=later)
    assert {item["payment_status"] for item in listing["items"]} == {"paid", "cancelled"}

    mine = invoice_service.list_customer_invoices(customer, {"page": "1", "limit": "2"}, now=later)
    assert mine["pagination"]["total"] == 4
    assert len(mine["items"]) == 2
    assert "service_record" in mine["items"][0]

    assert [invoice.id for invoice in invoice_service.get_overdue_invoices(staff, seed.store_id, now=later)] \
        == [overdue.id]
    assert len(invoice_service.get_due_soon_invoices(staff, seed.store_id, now=later)) == 1

    stats = invoice_service.get_store_invoice_stats(staff, seed.store_id, now=later)
    assert stats["total"] == 4
    assert stats["by_status"]["cancelled"] == 1
    assert stats["total_value"] == "158.50"
    assert stats["total_paid"] == "54.25"
    assert stats["total_outstanding"] == "104.25"
    assert stats["average_value"] == "52.83"
    assert stats["overdue"] == 1
    assert stats["due_soon"] == 1

    assert invoice_service.get_customer_invoice_stats(customer, now=later)["total"] == 4


def test_listing_uses_the_status_each_invoice_reports(staff, seed, make_request) -> None:
    late = _create(staff, seed, due_days=1)
    _, record_id = make_request()
    current = _create(staff, seed, service_record_id=record_id)
    later = NOW + timedelta(days=2)

    def ids(args):
        listing = invoice_service.list_store_invoices(staff, seed.store_id, args, now=later)
        return [item["id"] for item in listing["items"]]

    assert db.session.get(Invoice, late.id).payment_status == PaymentStatus.PENDING.value
    assert ids({"payment_status": "overdue"}) == [late.id]
    assert ids({"payment_status": "pending"}) == [current.id]
    assert ids({"is_overdue": "true"}) == [late.id]
    assert ids({"is_overdue": "false"}) == [current.id]

    stats = invoice_service.get_store_invoice_stats(staff, seed.store_id, now=later)
    assert stats["by_status"]["overdue"] == stats["overdue"] == 1
    assert stats["by_status"]["pending"] == 1


def test_listing_filters_by_number_and_due_date(staff, seed, make_request) -> None:
    soon = _create(staff, seed, due_days=1)
    _, record_id = make_request()
    later = _create(staff, seed, service_record_id=record_id)

    def ids(args):
        listing = invoice_service.list_store_invoices(staff, seed.store_id, args, now=NOW)
        return sorted(item["id"] for item in listing["items"])

    assert ids({"invoice_number": soon.invoice_number[4:].lower()}) == [soon.id]
    assert ids({"invoice_number": "inv-2025"}) == sorted([soon.id, later.id])
    assert ids({"due_date_to": "2025-05-22"}) == [soon.id]
    assert ids({"due_date_from": "2025-05-23"}) == [later.id]
    assert ids({"due_date_from": "2025-05-22", "due_date_to": "2025-06-30"}) == sorted([soon.id, later.id])


def test_listing_rejects_an_unreadable_flag(staff, seed) -> None:
    with pytest.raises(ValidationError) as excinfo:
        invoice_service.list_store_invoices(staff, seed.store_id, {"is_overdue": "maybe"}, now=NOW)

    assert excinfo.value.field == "is_overdue"
