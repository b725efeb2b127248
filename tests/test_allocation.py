from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import pytest

from reservation_engine.domain.models import (
    AllocationStrategy,
    GuestRequest,
    GuestType,
    Persisted,
    Room,
)
from reservation_engine.services.allocation_service import (
    add_room_allocation,
    generate_options,
    remove_room_allocation,
    select_room,
    update_room_allocation,
)


def room(
    room_id: str,
    room_type: str,
    capacity: int,
    tariff: str,
    is_available: bool = True,
) -> Room:
    return Room(
        room_id=room_id,
        room_number=room_id.upper(),
        room_type=room_type,
        capacity=capacity,
        tariff=Decimal(tariff),
        is_available=is_available,
    )


def request(guest_count: int, guest_type: GuestType = GuestType.FRIENDS) -> GuestRequest:
    return GuestRequest(
        guest_count=guest_count,
        guest_type=guest_type,
        check_in=date(2026, 3, 1),
        check_out=date(2026, 3, 3),
    )


def by_strategy(options):
    return {option.strategy: option for option in options}


INVENTORY = [
    room("c1", "Couple", 2, "1000"),
    room("c2", "Couple", 2, "1200"),
    room("q1", "Quad", 4, "1500"),
    room("f1", "Family", 6, "3000"),
    room("d1", "Dormitory", 10, "4000"),
]


def test_couple_gets_single_couple_room() -> None:
    rooms = [room("c1", "Couple", 2, "1000"), room("f1", "Family", 6, "3000")]

    options = by_strategy(generate_options(request(2, GuestType.COUPLE), rooms))
    comfort = options[AllocationStrategy.COMFORT_FIRST]

    assert len(comfort.allocations) == 1
    assert comfort.allocations[0].room_id == "c1"
    assert comfort.allocations[0].guest_count == 2
    assert comfort.allocations[0].extra_guests == 0


def test_family_gets_single_family_room_even_when_larger_than_needed() -> None:
    rooms = [room("q1", "Quad", 4, "1500"), room("f1", "family", 6, "3000")]

    options = by_strategy(generate_options(request(5, GuestType.FAMILY), rooms))
    comfort = options[AllocationStrategy.COMFORT_FIRST]

    assert [(item.room_id, item.guest_count) for item in comfort.allocations] == [("f1", 5)]


def test_comfort_first_prefers_least_wasted_capacity() -> None:
    rooms = [room("f1", "Family", 6, "3000"), room("q1", "Quad", 4, "1500"), room("c1", "Couple", 2, "1000")]

    options = by_strategy(generate_options(request(3), rooms))

    assert [item.room_id for item in options[AllocationStrategy.COMFORT_FIRST].allocations] == ["q1"]


def test_price_optimized_prefers_cheapest_per_guest_fitting_room() -> None:
    rooms = [
        room("c1", "Couple", 2, "1000"),
        room("q1", "Quad", 4, "1500"),
        room("d1", "Dormitory", 10, "2000"),
    ]

    options = by_strategy(generate_options(request(4), rooms))
    priced = options[AllocationStrategy.PRICE_OPTIMIZED]

    assert [(item.room_id, item.guest_count) for item in priced.allocations] == [("d1", 4)]


def test_minimal_rooms_uses_one_room_when_possible() -> None:
    options = by_strategy(generate_options(request(8), INVENTORY))

    minimal = options[AllocationStrategy.MINIMAL_ROOMS]
    assert [(item.room_id, item.guest_count) for item in minimal.allocations] == [("d1", 8)]


def test_minimal_rooms_fills_largest_rooms_first_when_none_fits() -> None:
    rooms = [room("c1", "Couple", 2, "1000"), room("q1", "Quad", 4, "1500"), room("f1", "Family", 6, "3000")]

    options = by_strategy(generate_options(request(12), rooms))

    minimal = options[AllocationStrategy.MINIMAL_ROOMS]
    assert [(item.room_id, item.guest_count) for item in minimal.allocations] == [
        ("f1", 6),
        ("q1", 4),
        ("c1", 2),
    ]


@pytest.mark.parametrize("guest_type", list(GuestType))
@pytest.mark.parametrize("guest_count", [1, 2, 3, 5, 7, 12, 20, 24])
def test_every_option_places_all_guests_when_capacity_suffices(
    guest_type: GuestType,
    guest_count: int,
) -> None:
    options = generate_options(request(guest_count, guest_type), INVENTORY)

    assert [option.strategy for option in options] == list(AllocationStrategy)
    for option in options:
        assert sum(item.guest_count for item in option.allocations) == guest_count
        assert option.is_complete
        assert all(item.guest_count <= item.capacity for item in option.allocations)


def test_insufficient_capacity_returns_incomplete_options(caplog) -> None:
    rooms = [room("c1", "Couple", 2, "1000"), room("q1", "Quad", 4, "1500")]

    with caplog.at_level(logging.WARNING):
        options = generate_options(request(10), rooms)

    assert len(options) == 3
    for option in options:
        assert option.allocated_guests == 6
        assert option.unplaced_guests == 4
        assert not option.is_complete
    assert "Allocation option incomplete" in caplog.text


def test_no_available_rooms_returns_empty_list(caplog) -> None:
    rooms = [room("c1", "Couple", 2, "1000", is_available=False)]

    with caplog.at_level(logging.WARNING):
        options = generate_options(request(2, GuestType.COUPLE), rooms)

    assert options == []
    assert "No available rooms" in caplog.text


def test_unavailable_rooms_are_never_proposed() -> None:
    rooms = [room("f1", "Family", 6, "3000", is_available=False), room("q1", "Quad", 4, "1500")]

    for option in generate_options(request(4, GuestType.FAMILY), rooms):
        assert [item.room_id for item in option.allocations] == ["q1"]


def test_ties_keep_inventory_order() -> None:
    rooms = [room("c1", "Couple", 2, "1000"), room("c2", "Couple", 2, "1000")]

    for option in generate_options(request(2, GuestType.COUPLE), rooms):
        assert option.allocations[0].room_id == "c1"


# --- manual editing ---

def test_add_room_allocation_uses_first_free_room() -> None:
    first = generate_options(request(2, GuestType.COUPLE), INVENTORY)[0].allocations

    result = add_room_allocation(first, INVENTORY)

    assert len(result) == 2
    assert result[-1].room_id == "c2"
    assert result[-1].guest_count == 1


def test_add_room_allocation_appends_unselected_row_when_inventory_exhausted() -> None:
    rooms = [room("c1", "Couple", 2, "1000")]
    current = generate_options(request(2, GuestType.COUPLE), rooms)[0].allocations

    result = add_room_allocation(current, rooms)

    assert result[-1].room_id == ""
    assert result[-1].guest_count == 1


def test_remove_room_allocation_by_key() -> None:
    allocations = generate_options(request(12), INVENTORY)[2].allocations

    result = remove_room_allocation(allocations, allocations[0].key)

    assert [item.key for item in result] == [item.key for item in allocations[1:]]


def test_update_room_allocation_can_overfill_a_room() -> None:
    allocations = generate_options(request(4), [room("q1", "Quad", 4, "1500")])[0].allocations

    result = update_room_allocation(allocations, allocations[0].key, guest_count=6)

    assert result[0].guest_count == 6
    assert result[0].extra_guests == 2


def test_update_room_allocation_rejects_identity_changes() -> None:
    allocations = generate_options(request(2), INVENTORY)[0].allocations

    with pytest.raises(ValueError):
        update_room_allocation(allocations, allocations[0].key, identity=Persisted("r-1"))
    with pytest.raises(ValueError):
        update_room_allocation(allocations, allocations[0].key, key="other")


def test_select_room_keeps_row_key_and_identity() -> None:
    allocations = generate_options(request(2), INVENTORY)[0].allocations
    row = allocations[0]

    result = select_room(allocations, row.key, room("f1", "Family", 6, "3000"))

    assert result[0].key == row.key
    assert result[0].identity == row.identity
    assert result[0].room_id == "f1"
    assert result[0].tariff == Decimal("3000")
    assert result[0].guest_count == row.guest_count
