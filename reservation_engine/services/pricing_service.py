"""Stay pricing: room tariff, special charges and discount."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

from reservation_engine.domain.models import (
    Discount,
    DiscountType,
    PricingBreakdown,
    RoomAllocation,
    SpecialCharge,
)
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


CENT = Decimal("0.01")
ZERO = Decimal("0")
SECONDS_PER_DAY = 24 * 60 * 60

DateLike = Union[date, datetime]


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_nights(check_in: DateLike, check_out: DateLike) -> int:
    """Whole nights between two instants, rounded up and never negative."""
    if isinstance(check_in, datetime) or isinstance(check_out, datetime):
        start = check_in if isinstance(check_in, datetime) else datetime.combine(check_in, datetime.min.time())
        end = check_out if isinstance(check_out, datetime) else datetime.combine(check_out, datetime.min.time())
        seconds = (end - start).total_seconds()
        return max(0, math.ceil(seconds / SECONDS_PER_DAY))
    return max(0, (check_out - check_in).days)


def room_tariff_total(allocations: Iterable[RoomAllocation], nights: int) -> Decimal:
    return to_money(sum((allocation.tariff * nights for allocation in allocations), ZERO))


def special_charges_total(charges: Iterable[SpecialCharge]) -> Decimal:
    return to_money(sum((charge.rate * charge.quantity for charge in charges), ZERO))


def discount_amount(subtotal: Decimal, discount: Discount) -> Decimal:
    if discount.discount_type == DiscountType.PERCENTAGE:
        return to_money(subtotal * Decimal(discount.value) / Decimal("100"))
    if discount.discount_type == DiscountType.AMOUNT:
        return to_money(discount.value)
    return to_money(ZERO)


def price(
    allocations: Iterable[RoomAllocation],
    charges: Iterable[SpecialCharge],
    discount: Discount,
    nights: int,
    clamp_negative_total: bool = True,
) -> PricingBreakdown:
    """Price a stay; `total == subtotal - discount` holds exactly on the rounded values.

    With `clamp_negative_total` a discount larger than the subtotal is capped
    at the subtotal so the total bottoms out at zero.
    """
    nights = max(0, nights)
    tariff_total = room_tariff_total(allocations, nights)
    charges_total = special_charges_total(charges)
    subtotal = tariff_total + charges_total
    discount_value = discount_amount(subtotal, discount)
    if clamp_negative_total and discount_value > subtotal:
        logger.info(
            "Discount exceeds subtotal; clamping | subtotal=%s | discount=%s",
            subtotal,
            discount_value,
        )
        discount_value = max(subtotal, ZERO)
    return PricingBreakdown(
        nights=nights,
        room_tariff_total=tariff_total,
        special_charges_total=charges_total,
        subtotal=subtotal,
        discount=discount_value,
        total=subtotal - discount_value,
    )


@dataclass(frozen=True)
class BalanceSummary:
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "total": str(self.total),
            "amount_paid": str(self.amount_paid),
            "balance_due": str(self.balance_due),
        }


def settle_balance(total: Decimal, amount_paid: Decimal) -> BalanceSummary:
    """Split a reservation total into what was already paid and what is still due."""
    paid = to_money(amount_paid)
    return BalanceSummary(
        total=to_money(total),
        amount_paid=paid,
        balance_due=to_money(total) - paid,
    )
