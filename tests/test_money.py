from decimal import Decimal

import pytest

from bikeshop_api.services import money
from bikeshop_api.services.errors import ValidationError, NotFoundError


def _items(*rows):
    return [money.LineItem.create(f"Line {index}", quantity, price) for index, (quantity, price) in enumerate(rows)]


def test_standard_document_totals() -> None:
    items = _items((2, "25.00"), (2, "50.00"))

    totals = money.compute_totals(items, Decimal("8.5"))

    assert totals.subtotal == Decimal("150.00")
    assert totals.tax_amount == Decimal("12.75")
    assert totals.total == Decimal("162.75")


def test_line_totals_are_rounded_before_summing() -> None:
    # 3 x 0.335 = 1.005 -> 1.01 per line, so two lines give 2.02 rather than round(2.01) = 2.01
    items = [
        money.LineItem(id="a", description="Spoke", quantity=Decimal("3"), unit_price=Decimal("0.335")),
        money.LineItem(id="b", description="Spoke", quantity=Decimal("3"), unit_price=Decimal("0.335")),
    ]

    totals = money.compute_totals(items, 0)

    assert [item.total for item in items] == [Decimal("1.01"), Decimal("1.01")]
    assert totals.subtotal == Decimal("2.02")


def test_tax_rounds_half_up() -> None:
    totals = money.compute_totals(_items((1, "10.10")), Decimal("5"))

    # 10.10 * 5% = 0.505
    assert totals.tax_amount == Decimal("0.51")
    assert totals.total == Decimal("10.61")


def test_recomputing_twice_gives_the_same_totals() -> None:
    items = _items((3, "19.99"), (1, "4.35"))

    first = money.compute_totals(items, Decimal("7.25"))
    second = money.compute_totals(items, Decimal("7.25"))

    assert first == second
    assert first.total == first.subtotal + first.tax_amount


def test_float_input_goes_through_its_string_form() -> None:
    item = money.LineItem.create("Chain", 3, 0.1)

    assert item.unit_price == Decimal("0.10")
    assert item.total == Decimal("0.30")


def test_unit_price_is_quantized_on_input() -> None:
    item = money.LineItem.create("Cable", 1, "12.345")

    assert item.unit_price == Decimal("12.35")


def test_fractional_quantity_is_kept() -> None:
    item = money.LineItem.create("Labour (hours)", "1.5", "40.00")

    assert item.quantity == Decimal("1.5")
    assert item.total == Decimal("60.00")
    assert item.to_stored()["quantity"] == "1.5"


def test_integral_quantity_is_stored_without_exponent() -> None:
    item = money.LineItem.create("Tube", Decimal("100"), "1.00")

    assert item.to_stored()["quantity"] == "100"


@pytest.mark.parametrize(
    "description, quantity, unit_price, field",
    [
        ("", 1, "1.00", "description"),
        ("   ", 1, "1.00", "description"),
        ("x" * 501, 1, "1.00", "description"),
        ("Tyre", 0, "1.00", "quantity"),
        ("Tyre", -2, "1.00", "quantity"),
        ("Tyre", "abc", "1.00", "quantity"),
        ("Tyre", True, "1.00", "quantity"),
        ("Tyre", 1, "-0.01", "unit_price"),
        ("Tyre", 1, None, "unit_price"),
        ("Tyre", 1, "NaN", "unit_price"),
    ],
)
def test_invalid_line_items_are_rejected(description, quantity, unit_price, field) -> None:
    with pytest.raises(ValidationError) as excinfo:
        money.LineItem.create(description, quantity, unit_price)

    assert excinfo.value.field == field


def test_zero_unit_price_is_allowed() -> None:
    item = money.LineItem.create("Free safety check", 1, 0)

    assert item.total == Decimal("0.00")


@pytest.mark.parametrize("rate", ["-0.01", "100.01", "abc"])
def test_tax_rate_outside_range_is_rejected(rate) -> None:
    with pytest.raises(ValidationError):
        money.validate_tax_rate(rate)


def test_tax_rate_bounds_are_inclusive() -> None:
    assert money.validate_tax_rate(0) == Decimal("0.00")
    assert money.validate_tax_rate(100) == Decimal("100.00")


def test_parse_line_items_requires_a_non_empty_list() -> None:
    with pytest.raises(ValidationError):
        money.parse_line_items([])
    with pytest.raises(ValidationError):
        money.parse_line_items({"description": "Tyre"})


def test_parse_line_items_ignores_client_ids_and_accepts_price_alias() -> None:
    items = money.parse_line_items([
        {"id": "item_client", "description": "Tyre", "quantity": 2, "price": 30, "total": "999"},
    ])

    assert items[0].id != "item_client"
    assert items[0].id.startswith("item_")
    assert items[0].total == Decimal("60.00")


def test_add_item_assigns_a_fresh_id() -> None:
    items = _items((1, "5.00"))
    added = money.LineItem.create("Bottle cage", 1, "8.00")

    result = money.add_item(items, added)

    assert len(result) == 2
    assert len({item.id for item in result}) == 2


def test_remove_item_by_id() -> None:
    items = _items((1, "5.00"), (1, "7.00"))

    remaining = money.remove_item(items, items[0].id)

    assert [item.id for item in remaining] == [items[1].id]


def test_remove_unknown_item_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        money.remove_item(_items((1, "5.00"), (1, "7.00")), "item_missing")


def test_removing_the_last_item_is_rejected() -> None:
    items = _items((1, "5.00"))

    with pytest.raises(ValidationError):
        money.remove_item(items, items[0].id)


def test_update_item_merges_fields_and_keeps_id() -> None:
    items = _items((1, "5.00"), (2, "7.00"))

    updated = money.update_item(items, items[1].id, {"quantity": 3})

    assert updated[1].id == items[1].id
    assert updated[1].description == items[1].description
    assert updated[1].total == Decimal("21.00")
    assert updated[0] == items[0]


def test_update_item_accepts_price_alias() -> None:
    items = _items((2, "5.00"))

    updated = money.update_item(items, items[0].id, {"price": "9.00"})

    assert updated[0].unit_price == Decimal("9.00")
    assert updated[0].total == Decimal("18.00")


def test_update_item_rejects_unknown_fields_and_ids() -> None:
    items = _items((1, "5.00"))

    with pytest.raises(ValidationError):
        money.update_item(items, items[0].id, {"total": "1.00"})
    with pytest.raises(NotFoundError):
        money.update_item(items, "item_missing", {"quantity": 2})


def test_stored_form_round_trips() -> None:
    item = money.LineItem.create("Derailleur tune", "1.25", "33.33")

    restored = money.LineItem.from_stored(item.to_stored())

    assert restored == item
    assert item.to_stored()["total"] == "41.66"
