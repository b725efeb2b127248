"""Extra-person overflow derivation and special charge list editing.

The charge list is both an input to and an output of the overflow derivation,
so re-deriving is gated by an explicit `OverflowCache` owned by the caller's
edit session rather than by module state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from reservation_engine.domain.models import (
    AutoCharge,
    ManualCharge,
    RoomAllocation,
    SpecialCharge,
    SpecialChargeMaster,
)
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


DEFAULT_EXTRA_PERSON_CHARGE_NAME = "Extra Person"

_PROTECTED_CHARGE_FIELDS = frozenset({"key", "identity"})


@dataclass(frozen=True)
class Overflow:
    extra_guest_count: int
    nights: int

    @property
    def charge_quantity(self) -> int:
        """Billable person-nights."""
        return self.extra_guest_count * self.nights


@dataclass(frozen=True)
class OverflowCache:
    extra_guest_count: int
    nights: int


@dataclass(frozen=True)
class OverflowDerivation:
    overflow: Overflow
    master: Optional[SpecialChargeMaster]
    cache: Optional[OverflowCache]
    changed: bool

    @property
    def can_compute(self) -> bool:
        return self.master is not None


def compute_overflow(allocations: Iterable[RoomAllocation], nights: int) -> Overflow:
    extra_guest_count = sum(allocation.extra_guests for allocation in allocations)
    return Overflow(extra_guest_count=extra_guest_count, nights=max(0, nights))


def find_catalog_entry(
    catalog: Iterable[SpecialChargeMaster],
    name: str,
) -> Optional[SpecialChargeMaster]:
    for entry in catalog:
        if entry.is_active and entry.name == name:
            return entry
    return None


def derive_overflow(
    allocations: Sequence[RoomAllocation],
    nights: int,
    catalog: Sequence[SpecialChargeMaster],
    cache: Optional[OverflowCache] = None,
    charge_name: str = DEFAULT_EXTRA_PERSON_CHARGE_NAME,
) -> OverflowDerivation:
    """Compute overflow and resolve its catalog rate.

    While the catalog entry is missing the cache is dropped and the derivation
    always reports a change, so a stale surcharge is stripped and the entry is
    picked up again on the next call once it reappears.
    """
    overflow = compute_overflow(allocations, nights)
    computed = OverflowCache(
        extra_guest_count=overflow.extra_guest_count,
        nights=overflow.nights,
    )
    master = find_catalog_entry(catalog, charge_name)
    if master is None:
        if overflow.extra_guest_count > 0:
            logger.warning(
                "Extra person charge missing from catalog; surcharge not generated | "
                "charge_name=%s | extra_guests=%s | nights=%s",
                charge_name,
                overflow.extra_guest_count,
                overflow.nights,
            )
        return OverflowDerivation(
            overflow=overflow,
            master=None,
            cache=None,
            changed=True,
        )
    return OverflowDerivation(
        overflow=overflow,
        master=master,
        cache=computed,
        changed=computed != cache,
    )


def describe_overflow(overflow: Overflow) -> str:
    guests = overflow.extra_guest_count
    nights = overflow.nights
    return (
        f"{guests} extra guest{'s' if guests != 1 else ''} x "
        f"{nights} night{'s' if nights != 1 else ''} (Auto-generated)"
    )


def find_auto_charge(charges: Iterable[SpecialCharge]) -> Optional[AutoCharge]:
    for charge in charges:
        if isinstance(charge, AutoCharge):
            return charge
    return None


def upsert_auto_charge(
    charges: Sequence[SpecialCharge],
    derivation: OverflowDerivation,
) -> list[SpecialCharge]:
    """Insert, refresh or drop the single auto-generated surcharge."""
    overflow = derivation.overflow
    master = derivation.master
    if master is None or overflow.charge_quantity <= 0:
        return [charge for charge in charges if not isinstance(charge, AutoCharge)]

    existing = find_auto_charge(charges)
    if existing is None:
        auto_charge = AutoCharge(
            master_id=master.charge_id,
            name=master.name,
            rate=master.default_rate,
            quantity=overflow.charge_quantity,
            description=describe_overflow(overflow),
        )
        logger.info(
            "Extra person charge added | extra_guests=%s | nights=%s | quantity=%s",
            overflow.extra_guest_count,
            overflow.nights,
            overflow.charge_quantity,
        )
        return [*charges, auto_charge]

    refreshed = replace(
        existing,
        master_id=master.charge_id,
        rate=master.default_rate,
        quantity=overflow.charge_quantity,
        description=describe_overflow(overflow),
    )
    result: list[SpecialCharge] = []
    placed = False
    for charge in charges:
        if not isinstance(charge, AutoCharge):
            result.append(charge)
        elif not placed:
            result.append(refreshed)
            placed = True
    return result


def sync_auto_charge(
    charges: Sequence[SpecialCharge],
    allocations: Sequence[RoomAllocation],
    nights: int,
    catalog: Sequence[SpecialChargeMaster],
    cache: Optional[OverflowCache] = None,
    charge_name: str = DEFAULT_EXTRA_PERSON_CHARGE_NAME,
) -> tuple[list[SpecialCharge], Optional[OverflowCache]]:
    """Re-derive the auto charge only when the overflow inputs moved."""
    derivation = derive_overflow(
        allocations,
        nights,
        catalog,
        cache=cache,
        charge_name=charge_name,
    )
    if not derivation.changed:
        return list(charges), derivation.cache
    return upsert_auto_charge(charges, derivation), derivation.cache


def add_quick_charge(
    charges: Sequence[SpecialCharge],
    master: SpecialChargeMaster,
) -> list[SpecialCharge]:
    for index, charge in enumerate(charges):
        if isinstance(charge, ManualCharge) and charge.master_id == master.charge_id:
            result = list(charges)
            result[index] = replace(charge, quantity=charge.quantity + 1)
            return result
    new_charge = ManualCharge(
        name=master.name,
        rate=master.default_rate,
        quantity=1,
        description=master.description,
        master_id=master.charge_id,
    )
    return [*charges, new_charge]


def add_custom_charge(charges: Sequence[SpecialCharge]) -> list[SpecialCharge]:
    return [*charges, ManualCharge(name="", rate=Decimal("0"), quantity=1)]


def _is_user_editable(charge: SpecialCharge) -> bool:
    return isinstance(charge, ManualCharge)


def _find_charge(charges: Iterable[SpecialCharge], key: str) -> Optional[SpecialCharge]:
    for charge in charges:
        if charge.key == key:
            return charge
    return None


def remove_charge(charges: Sequence[SpecialCharge], key: str) -> list[SpecialCharge]:
    target = _find_charge(charges, key)
    if target is None:
        return list(charges)
    if not _is_user_editable(target):
        logger.debug("Ignored removal of auto-generated charge | key=%s", key)
        return list(charges)
    return [charge for charge in charges if charge.key != key]


def update_charge(
    charges: Sequence[SpecialCharge],
    key: str,
    /,
    **patch: Any,
) -> list[SpecialCharge]:
    protected = _PROTECTED_CHARGE_FIELDS.intersection(patch)
    if protected:
        raise ValueError(f"Cannot change charge fields: {sorted(protected)}")
    target = _find_charge(charges, key)
    if target is None:
        return list(charges)
    if not _is_user_editable(target):
        logger.debug("Ignored edit of auto-generated charge | key=%s", key)
        return list(charges)
    if "rate" in patch:
        patch["rate"] = Decimal(str(patch["rate"]))
    return [replace(charge, **patch) if charge is target else charge for charge in charges]
