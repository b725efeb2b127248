"""Room allocation proposals built from one greedy fill and three ranking strategies."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from reservation_engine.domain.models import (
    AllocationOption,
    AllocationStrategy,
    GuestRequest,
    GuestType,
    Room,
    RoomAllocation,
)
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


ROOM_TYPE_PRIORITY = {
    "couple": 1,
    "quad": 2,
    "family": 3,
    "dormitory": 4,
}
UNLISTED_ROOM_TYPE_PRIORITY = 5

COUPLE_SINGLE_ROOM_LIMIT = 2
FAMILY_SINGLE_ROOM_LIMIT = 6

RankKey = Callable[[Room, int], tuple]

_PROTECTED_ALLOCATION_FIELDS = frozenset({"key", "identity"})


def room_type_priority(room_type: str) -> int:
    return ROOM_TYPE_PRIORITY.get(room_type.strip().lower(), UNLISTED_ROOM_TYPE_PRIORITY)


def comfort_rank(room: Room, guests: int) -> tuple:
    fits = room.capacity >= guests
    return (
        0 if fits else 1,
        room.capacity - guests if fits else 0,
        room_type_priority(room.room_type),
        room.price_per_guest,
    )


def price_rank(room: Room, guests: int) -> tuple:
    fits = room.capacity >= guests
    return (
        0 if fits else 1,
        room.price_per_guest,
        room.capacity - guests if fits else 0,
    )


def minimal_rooms_rank(room: Room, guests: int) -> tuple:
    if room.capacity >= guests:
        return (0, room.capacity - guests)
    return (1, -room.capacity)


def rank_rooms(rooms: Sequence[Room], guests: int, rank_key: RankKey) -> list[Room]:
    """Order rooms by `rank_key`; ties keep inventory order."""
    return sorted(rooms, key=lambda room: rank_key(room, guests))


def greedy_fill(ranked_rooms: Sequence[Room], guest_count: int) -> list[RoomAllocation]:
    """Consume guests room by room until none remain or rooms run out."""
    allocations: list[RoomAllocation] = []
    remaining = guest_count
    for room in ranked_rooms:
        if remaining <= 0:
            break
        assigned = min(room.capacity, remaining)
        if assigned <= 0:
            continue
        allocations.append(RoomAllocation.for_room(room, assigned))
        remaining -= assigned
    return allocations


def _preferred_single_room_type(request: GuestRequest) -> Optional[str]:
    if request.guest_type == GuestType.COUPLE and request.guest_count <= COUPLE_SINGLE_ROOM_LIMIT:
        return "couple"
    if request.guest_type == GuestType.FAMILY and request.guest_count <= FAMILY_SINGLE_ROOM_LIMIT:
        return "family"
    return None


@dataclass(frozen=True)
class StrategyDefinition:
    strategy: AllocationStrategy
    rank_key: RankKey
    prefers_single_room: bool = False

    def allocate(self, request: GuestRequest, rooms: Sequence[Room]) -> list[RoomAllocation]:
        ranked = rank_rooms(rooms, request.guest_count, self.rank_key)
        if self.prefers_single_room:
            preferred_type = _preferred_single_room_type(request)
            if preferred_type is not None:
                for room in ranked:
                    if (
                        room.room_type.strip().lower() == preferred_type
                        and room.capacity >= request.guest_count
                    ):
                        return [RoomAllocation.for_room(room, request.guest_count)]
        return greedy_fill(ranked, request.guest_count)


STRATEGIES: tuple[StrategyDefinition, ...] = (
    StrategyDefinition(AllocationStrategy.COMFORT_FIRST, comfort_rank, prefers_single_room=True),
    StrategyDefinition(AllocationStrategy.PRICE_OPTIMIZED, price_rank),
    StrategyDefinition(AllocationStrategy.MINIMAL_ROOMS, minimal_rooms_rank),
)


def build_option(
    definition: StrategyDefinition,
    request: GuestRequest,
    rooms: Sequence[Room],
) -> AllocationOption:
    option = AllocationOption(
        strategy=definition.strategy,
        allocations=tuple(definition.allocate(request, rooms)),
        requested_guests=request.guest_count,
    )
    if not option.is_complete:
        logger.warning(
            "Allocation option incomplete | strategy=%s | requested=%s | allocated=%s | unplaced=%s",
            option.strategy.value,
            option.requested_guests,
            option.allocated_guests,
            option.unplaced_guests,
        )
    return option


def generate_options(request: GuestRequest, rooms: Sequence[Room]) -> list[AllocationOption]:
    """Propose one option per strategy; an empty list means nothing can be allocated."""
    available = [room for room in rooms if room.is_available]
    if not available:
        logger.warning(
            "No available rooms | guests=%s | check_in=%s | check_out=%s",
            request.guest_count,
            request.check_in,
            request.check_out,
        )
        return []

    options = [build_option(definition, request, available) for definition in STRATEGIES]
    logger.info(
        "Allocation options generated | guests=%s | guest_type=%s | available_rooms=%s | rooms_per_option=%s",
        request.guest_count,
        request.guest_type.value,
        len(available),
        [option.room_count for option in options],
    )
    return options


def add_room_allocation(
    allocations: Sequence[RoomAllocation],
    rooms: Sequence[Room],
) -> list[RoomAllocation]:
    """Append a one-guest row on the first free room, or an unselected row if none is free."""
    allocated_room_ids = {allocation.room_id for allocation in allocations}
    for room in rooms:
        if room.is_available and room.room_id not in allocated_room_ids:
            return [*allocations, RoomAllocation.for_room(room, 1)]
    placeholder = RoomAllocation(
        room_id="",
        room_number="",
        room_type="",
        capacity=0,
        tariff=Decimal("0"),
        guest_count=1,
    )
    return [*allocations, placeholder]


def remove_room_allocation(
    allocations: Sequence[RoomAllocation],
    key: str,
) -> list[RoomAllocation]:
    return [allocation for allocation in allocations if allocation.key != key]


def update_room_allocation(
    allocations: Sequence[RoomAllocation],
    key: str,
    /,
    **changes: Any,
) -> list[RoomAllocation]:
    protected = _PROTECTED_ALLOCATION_FIELDS.intersection(changes)
    if protected:
        raise ValueError(f"Cannot change allocation fields: {sorted(protected)}")
    return [
        replace(allocation, **changes) if allocation.key == key else allocation
        for allocation in allocations
    ]


def select_room(
    allocations: Sequence[RoomAllocation],
    key: str,
    room: Room,
) -> list[RoomAllocation]:
    """Point an allocation row at another physical room, keeping its guests and identity."""
    return update_room_allocation(
        allocations,
        key,
        room_id=room.room_id,
        room_number=room.room_number,
        room_type=room.room_type,
        capacity=room.capacity,
        tariff=room.tariff,
    )
