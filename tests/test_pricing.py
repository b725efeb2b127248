from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal

import pytest

from reservation_engine.domain.models import (
    NO_DISCOUNT,
    Discount,
    DiscountType,
    ManualCharge,
    RoomAllocation,
)
from reservation_engine.services.pricing_service import (
    compute_nights,
    discount_amount,
    price,
    settle_balance,
)


def allocation(tariff: str, guest_count: int = 2) -> RoomAllocation:
    return RoomAllocation(
        room_id="room-a",
        room_number="101",
        room_type="Couple",
        capacity=2,
        tariff=Decimal(tariff),
        guest_count=guest_count,
    )


def test_ten_percent_of_five_thousand() -> None:
    breakdown = price(
        [allocation("2500")],
        [],
        Discount(DiscountType.PERCENTAGE, Decimal("10")),
        nights=2,
    )

    assert breakdown.subtotal == Decimal("5000")
    assert breakdown.discount == Decimal("500")
    assert breakdown.total == Decimal("4500")


def test_amount_discount() -> None:
    breakdown = price(
        [allocation("1000")],
        [ManualCharge(name="Campfire", rate=Decimal("300"), quantity=2)],
        Discount(DiscountType.AMOUNT, Decimal("250")),
        nights=3,
    )

    assert breakdown.room_tariff_total == Decimal("3000")
    assert breakdown.special_charges_total == Decimal("600")
    assert breakdown.subtotal == Decimal("3600")
    assert breakdown.discount == Decimal("250")
    assert breakdown.total == Decimal("3350")


def test_no_discount() -> None:
    breakdown = price([allocation("1000")], [], NO_DISCOUNT, nights=1)

    assert breakdown.discount == Decimal("0")
    assert breakdown.total == breakdown.subtotal == Decimal("1000")


@pytest.mark.parametrize(
    "discount",
    [
        Discount(DiscountType.PERCENTAGE, Decimal("12.5")),
        Discount(DiscountType.PERCENTAGE, Decimal("33.333")),
        Discount(DiscountType.AMOUNT, Decimal("0.005")),
        NO_DISCOUNT,
    ],
)
def test_totals_are_exact_after_rounding(discount: Discount) -> None:
    breakdown = price(
        [allocation("999.99"), allocation("1234.565")],
        [
            ManualCharge(name="Snacks", rate=Decimal("33.333"), quantity=3),
            ManualCharge(name="Laundry", rate=Decimal("0.1"), quantity=7),
        ],
        discount,
        nights=3,
    )

    assert breakdown.subtotal == breakdown.room_tariff_total + breakdown.special_charges_total
    assert breakdown.total == breakdown.subtotal - breakdown.discount
    for value in (breakdown.subtotal, breakdown.discount, breakdown.total):
        assert value == value.quantize(Decimal("0.01"))


def test_discount_larger_than_subtotal_is_clamped(caplog) -> None:
    with caplog.at_level(logging.INFO):
        breakdown = price(
            [allocation("2500")],
            [],
            Discount(DiscountType.AMOUNT, Decimal("10000")),
            nights=2,
        )

    assert breakdown.discount == Decimal("5000")
    assert breakdown.total == Decimal("0")
    assert "Discount exceeds subtotal" in caplog.text


def test_negative_total_allowed_when_clamp_disabled() -> None:
    breakdown = price(
        [allocation("2500")],
        [],
        Discount(DiscountType.AMOUNT, Decimal("10000")),
        nights=2,
        clamp_negative_total=False,
    )

    assert breakdown.total == Decimal("-5000")
    assert breakdown.total == breakdown.subtotal - breakdown.discount


def test_percentage_discount_is_rounded_half_up() -> None:
    assert discount_amount(Decimal("0.10"), Discount(DiscountType.PERCENTAGE, Decimal("25"))) == Decimal("0.03")


def test_breakdown_serializes_money_as_strings() -> None:
    payload = price([allocation("1000")], [], NO_DISCOUNT, nights=1).to_dict()

    assert payload["nights"] == 1
    assert payload["total"] == "1000.00"


# --- nights ---

def test_nights_between_dates() -> None:
    assert compute_nights(date(2026, 3, 1), date(2026, 3, 3)) == 2


def test_nights_never_negative() -> None:
    assert compute_nights(date(2026, 3, 3), date(2026, 3, 1)) == 0
    assert compute_nights(date(2026, 3, 3), date(2026, 3, 3)) == 0


def test_partial_days_round_up() -> None:
    assert compute_nights(datetime(2026, 3, 1, 14, 0), datetime(2026, 3, 2, 11, 0)) == 1
    assert compute_nights(datetime(2026, 3, 1, 10, 0), datetime(2026, 3, 2, 22, 0)) == 2


def test_zero_nights_prices_only_charges() -> None:
    breakdown = price(
        [allocation("1000")],
        [ManualCharge(name="Conference Hall", rate=Decimal("5000"))],
        NO_DISCOUNT,
        nights=0,
    )

    assert breakdown.room_tariff_total == Decimal("0")
    assert breakdown.total == Decimal("5000")


# --- balance ---

def test_settle_balance_splits_paid_and_due() -> None:
    summary = settle_balance(Decimal("4200"), Decimal("1000"))

    assert summary.amount_paid == Decimal("1000")
    assert summary.balance_due == Decimal("3200")
    assert summary.to_dict() == {
        "total": "4200.00",
        "amount_paid": "1000.00",
        "balance_due": "3200.00",
    }
