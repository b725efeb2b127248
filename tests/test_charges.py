from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from reservation_engine.domain.models import (
    AUTO_CHARGE_KEY,
    NO_DISCOUNT,
    AutoCharge,
    GuestRequest,
    GuestType,
    ManualCharge,
    Persisted,
    RateType,
    Room,
    RoomAllocation,
    SpecialChargeMaster,
)
from reservation_engine.services.allocation_service import generate_options, update_room_allocation
from reservation_engine.services.charge_service import (
    Overflow,
    OverflowCache,
    add_custom_charge,
    add_quick_charge,
    compute_overflow,
    derive_overflow,
    describe_overflow,
    find_auto_charge,
    remove_charge,
    sync_auto_charge,
    update_charge,
    upsert_auto_charge,
)
from reservation_engine.services.pricing_service import compute_nights, price


EXTRA_PERSON = SpecialChargeMaster(
    charge_id="m-extra",
    name="Extra Person",
    default_rate=Decimal("300"),
    rate_type=RateType.PER_PERSON,
    description="Per person per day",
)
KITCHEN = SpecialChargeMaster(
    charge_id="m-kitchen",
    name="Kitchen",
    default_rate=Decimal("2000"),
    rate_type=RateType.PER_DAY,
)
CATALOG = [KITCHEN, EXTRA_PERSON]

QUAD = Room(
    room_id="q1",
    room_number="201",
    room_type="Quad",
    capacity=4,
    tariff=Decimal("1500"),
)


def quad_allocation(guest_count: int) -> RoomAllocation:
    return RoomAllocation.for_room(QUAD, guest_count)


def auto_charges(charges) -> list[AutoCharge]:
    return [charge for charge in charges if isinstance(charge, AutoCharge)]


# --- overflow ---

def test_no_extra_guests_means_no_charge_quantity() -> None:
    overflow = compute_overflow([quad_allocation(4)], nights=3)

    assert overflow.extra_guest_count == 0
    assert overflow.charge_quantity == 0


@pytest.mark.parametrize("base", [4, 5])
@pytest.mark.parametrize("k", [1, 2, 3])
def test_overfilling_a_room_by_k_adds_k_extra_guests(base: int, k: int) -> None:
    other = RoomAllocation(
        room_id="c1",
        room_number="101",
        room_type="Couple",
        capacity=2,
        tariff=Decimal("1000"),
        guest_count=2,
    )
    before = compute_overflow([quad_allocation(base), other], nights=2)
    after = compute_overflow([quad_allocation(base + k), other], nights=2)

    assert after.extra_guest_count == before.extra_guest_count + k


def test_six_guests_in_quad_for_two_nights_bills_four_person_nights() -> None:
    stay = GuestRequest(6, GuestType.FRIENDS, date(2026, 3, 1), date(2026, 3, 3))
    option = generate_options(stay, [QUAD])[0]
    allocations = update_room_allocation(option.allocations, option.allocations[0].key, guest_count=6)
    nights = compute_nights(stay.check_in, stay.check_out)

    charges, cache = sync_auto_charge([], allocations, nights, CATALOG)

    assert allocations[0].guest_count == 6
    assert compute_overflow(allocations, nights) == Overflow(extra_guest_count=2, nights=2)
    [auto] = auto_charges(charges)
    assert auto.quantity == 4
    assert auto.rate == Decimal("300")
    assert auto.amount == Decimal("1200")
    assert auto.master_id == "m-extra"
    assert auto.description == "2 extra guests x 2 nights (Auto-generated)"
    assert cache == OverflowCache(extra_guest_count=2, nights=2)

    breakdown = price(allocations, charges, NO_DISCOUNT, nights)
    assert breakdown.room_tariff_total == Decimal("3000")
    assert breakdown.special_charges_total == Decimal("1200")
    assert breakdown.total == Decimal("4200")


def test_describe_overflow_singular() -> None:
    assert describe_overflow(Overflow(1, 1)) == "1 extra guest x 1 night (Auto-generated)"


# --- auto charge upsert ---

def test_upsert_twice_is_idempotent() -> None:
    derivation = derive_overflow([quad_allocation(6)], 2, CATALOG)
    manual = ManualCharge(name="Kitchen", rate=Decimal("2000"), master_id="m-kitchen")

    once = upsert_auto_charge([manual], derivation)
    twice = upsert_auto_charge(once, derivation)

    assert once == twice
    assert len(auto_charges(twice)) == 1


def test_upsert_refreshes_existing_auto_charge_in_place() -> None:
    manual = ManualCharge(name="Kitchen", rate=Decimal("2000"), master_id="m-kitchen")
    first = upsert_auto_charge([manual], derive_overflow([quad_allocation(5)], 2, CATALOG))

    second = upsert_auto_charge(first, derive_overflow([quad_allocation(7)], 2, CATALOG))

    assert [charge.key for charge in second] == [manual.key, AUTO_CHARGE_KEY]
    assert find_auto_charge(second).quantity == 6


def test_upsert_collapses_duplicate_auto_charges() -> None:
    stale = AutoCharge(master_id="m-extra", name="Extra Person", rate=Decimal("300"), quantity=1)
    derivation = derive_overflow([quad_allocation(6)], 1, CATALOG)

    result = upsert_auto_charge([stale, stale], derivation)

    assert len(auto_charges(result)) == 1
    assert result[0].quantity == 2


def test_removing_last_overflow_guest_drops_auto_charge() -> None:
    manual = ManualCharge(name="Kitchen", rate=Decimal("2000"), master_id="m-kitchen")
    charges, cache = sync_auto_charge([manual], [quad_allocation(5)], 2, CATALOG)
    assert find_auto_charge(charges) is not None

    charges, cache = sync_auto_charge(charges, [quad_allocation(4)], 2, CATALOG, cache=cache)

    assert find_auto_charge(charges) is None
    assert charges == [manual]
    assert cache == OverflowCache(extra_guest_count=0, nights=2)


def test_zero_nights_drops_auto_charge() -> None:
    charges, cache = sync_auto_charge([], [quad_allocation(6)], 2, CATALOG)

    charges, _ = sync_auto_charge(charges, [quad_allocation(6)], 0, CATALOG, cache=cache)

    assert find_auto_charge(charges) is None


# --- cache gating ---

def test_unchanged_overflow_skips_rederivation() -> None:
    cache = OverflowCache(extra_guest_count=2, nights=2)
    manual = ManualCharge(name="Campfire", rate=Decimal("300"))

    charges, next_cache = sync_auto_charge([manual], [quad_allocation(6)], 2, CATALOG, cache=cache)

    assert charges == [manual]
    assert next_cache == cache


def test_missing_catalog_entry_warns_and_resets_cache(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        derivation = derive_overflow([quad_allocation(6)], 2, [KITCHEN], cache=None)

    assert not derivation.can_compute
    assert derivation.cache is None
    assert "Extra person charge missing from catalog" in caplog.text

    charges, cache = sync_auto_charge([], [quad_allocation(6)], 2, [KITCHEN])
    assert charges == []
    assert cache is None

    charges, cache = sync_auto_charge(charges, [quad_allocation(6)], 2, CATALOG, cache=cache)
    assert find_auto_charge(charges).quantity == 4


def test_catalog_entry_removed_mid_session_strips_auto_charge() -> None:
    charges, cache = sync_auto_charge([], [quad_allocation(6)], 2, CATALOG)
    assert find_auto_charge(charges).quantity == 4

    charges, cache = sync_auto_charge(charges, [quad_allocation(6)], 2, [KITCHEN], cache=cache)

    assert find_auto_charge(charges) is None
    assert cache is None

    charges, cache = sync_auto_charge(charges, [quad_allocation(6)], 2, CATALOG, cache=cache)
    assert find_auto_charge(charges).quantity == 4
    assert cache == OverflowCache(extra_guest_count=2, nights=2)


def test_inactive_catalog_entry_is_ignored() -> None:
    inactive = replace(EXTRA_PERSON, is_active=False)

    derivation = derive_overflow([quad_allocation(6)], 2, [inactive])

    assert derivation.master is None


# --- manual editing ---

def test_quick_add_increments_existing_catalog_charge() -> None:
    charges = add_quick_charge([], KITCHEN)
    charges = add_quick_charge(charges, KITCHEN)

    assert len(charges) == 1
    assert charges[0].quantity == 2
    assert charges[0].rate == Decimal("2000")
    assert charges[0].master_id == "m-kitchen"


def test_custom_charge_starts_blank() -> None:
    [charge] = add_custom_charge([])

    assert isinstance(charge, ManualCharge)
    assert charge.master_id is None
    assert charge.name == ""
    assert charge.quantity == 1


def test_auto_charge_cannot_be_removed_or_edited() -> None:
    charges, _ = sync_auto_charge([], [quad_allocation(6)], 2, CATALOG)

    assert remove_charge(charges, AUTO_CHARGE_KEY) == charges
    assert update_charge(charges, AUTO_CHARGE_KEY, quantity=1) == charges


def test_manual_charge_edit_and_remove() -> None:
    charges = add_quick_charge([], KITCHEN)
    key = charges[0].key

    edited = update_charge(charges, key, rate="1750.50", quantity=3)
    assert edited[0].rate == Decimal("1750.50")
    assert edited[0].amount == Decimal("5251.50")

    assert remove_charge(edited, key) == []


def test_update_charge_rejects_identity_fields() -> None:
    charges = add_quick_charge([], KITCHEN)

    with pytest.raises(ValueError):
        update_charge(charges, charges[0].key, key="other")
    with pytest.raises(ValueError):
        update_charge(charges, charges[0].key, identity=Persisted("c-1"))
