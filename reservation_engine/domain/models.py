"""Domain models for room allocation, stay pricing and edit reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Generic, Optional, TypeVar, Union
from uuid import uuid4


def new_key() -> str:
    """Client-side key for an entity that lives only in the edit session."""
    return uuid4().hex


class GuestType(str, Enum):
    INDIVIDUAL = "individual"
    COUPLE = "couple"
    FAMILY = "family"
    FRIENDS = "friends"


class RateType(str, Enum):
    PER_DAY = "per_day"
    PER_PERSON = "per_person"
    FIXED = "fixed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    AMOUNT = "amount"
    NONE = "none"


class AllocationStrategy(str, Enum):
    COMFORT_FIRST = "comfort_first"
    PRICE_OPTIMIZED = "price_optimized"
    MINIMAL_ROOMS = "minimal_rooms"


@dataclass(frozen=True)
class Draft:
    """Entity created during editing that has no stored record yet."""

    record_id: ClassVar[None] = None


@dataclass(frozen=True)
class Persisted:
    """Entity loaded from (or already written to) the reservation store."""

    record_id: str


EntityIdentity = Union[Draft, Persisted]
DRAFT = Draft()


@dataclass(frozen=True)
class Room:
    room_id: str
    room_number: str
    room_type: str
    capacity: int
    tariff: Decimal
    is_available: bool = True

    @property
    def price_per_guest(self) -> Decimal:
        if self.capacity <= 0:
            return Decimal("Infinity")
        return self.tariff / self.capacity


@dataclass(frozen=True)
class GuestRequest:
    guest_count: int
    guest_type: GuestType
    check_in: date
    check_out: date


@dataclass(frozen=True)
class RoomAllocation:
    room_id: str
    room_number: str
    room_type: str
    capacity: int
    tariff: Decimal
    guest_count: int
    key: str = field(default_factory=new_key)
    identity: EntityIdentity = DRAFT

    @classmethod
    def for_room(cls, room: Room, guest_count: int) -> RoomAllocation:
        return cls(
            room_id=room.room_id,
            room_number=room.room_number,
            room_type=room.room_type,
            capacity=room.capacity,
            tariff=room.tariff,
            guest_count=guest_count,
        )

    @property
    def extra_guests(self) -> int:
        return max(0, self.guest_count - self.capacity)


@dataclass(frozen=True)
class AllocationOption:
    strategy: AllocationStrategy
    allocations: tuple[RoomAllocation, ...]
    requested_guests: int

    @property
    def allocated_guests(self) -> int:
        return sum(allocation.guest_count for allocation in self.allocations)

    @property
    def unplaced_guests(self) -> int:
        return max(0, self.requested_guests - self.allocated_guests)

    @property
    def is_complete(self) -> bool:
        return self.allocated_guests == self.requested_guests

    @property
    def room_count(self) -> int:
        return len(self.allocations)

    @property
    def nightly_tariff(self) -> Decimal:
        return sum((allocation.tariff for allocation in self.allocations), Decimal("0"))


@dataclass(frozen=True)
class SpecialChargeMaster:
    """Catalog definition of a billable extra."""

    charge_id: str
    name: str
    default_rate: Decimal
    rate_type: RateType
    description: str = ""
    is_active: bool = True


AUTO_CHARGE_KEY = "extra_person_auto"


@dataclass(frozen=True)
class ManualCharge:
    """Charge added and edited by the operator (catalog quick-add or custom)."""

    name: str
    rate: Decimal
    quantity: int = 1
    description: str = ""
    master_id: Optional[str] = None
    key: str = field(default_factory=new_key)
    identity: EntityIdentity = DRAFT

    is_auto_generated: ClassVar[bool] = False

    @property
    def amount(self) -> Decimal:
        return self.rate * self.quantity


@dataclass(frozen=True)
class AutoCharge:
    """System-owned extra-person surcharge; only the overflow derivation touches it."""

    master_id: str
    name: str
    rate: Decimal
    quantity: int
    description: str = ""
    identity: EntityIdentity = DRAFT
    key: str = field(default=AUTO_CHARGE_KEY, init=False)

    is_auto_generated: ClassVar[bool] = True

    @property
    def amount(self) -> Decimal:
        return self.rate * self.quantity


SpecialCharge = Union[ManualCharge, AutoCharge]


@dataclass(frozen=True)
class Guest:
    name: str
    phone: str
    whatsapp: str = ""
    telegram: str = ""
    is_primary: bool = False
    key: str = field(default_factory=new_key)
    identity: EntityIdentity = DRAFT


@dataclass(frozen=True)
class Discount:
    discount_type: DiscountType = DiscountType.NONE
    value: Decimal = Decimal("0")


NO_DISCOUNT = Discount()


@dataclass(frozen=True)
class PricingBreakdown:
    nights: int
    room_tariff_total: Decimal
    special_charges_total: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, str | int]:
        return {
            "nights": self.nights,
            "room_tariff_total": str(self.room_tariff_total),
            "special_charges_total": str(self.special_charges_total),
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
        }


@dataclass(frozen=True)
class ReservationState:
    """Rooms, guests and charges of one reservation at a point in time."""

    rooms: tuple[RoomAllocation, ...] = ()
    guests: tuple[Guest, ...] = ()
    charges: tuple[SpecialCharge, ...] = ()


EntityT = TypeVar("EntityT")


@dataclass(frozen=True)
class Replacement(Generic[EntityT]):
    deleted_id: str
    created: EntityT


@dataclass(frozen=True)
class CategoryDelta(Generic[EntityT]):
    creates: tuple[EntityT, ...] = ()
    updates: tuple[EntityT, ...] = ()
    replaces: tuple[Replacement[EntityT], ...] = ()
    deletes: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.replaces or self.deletes)

    @property
    def deleted_ids(self) -> tuple[str, ...]:
        """Every record id soft-deleted by this delta, replaced records included."""
        return self.deletes + tuple(item.deleted_id for item in self.replaces)

    @property
    def created(self) -> tuple[EntityT, ...]:
        """Every new record written by this delta, replacement records included."""
        return tuple(item.created for item in self.replaces) + self.creates


@dataclass(frozen=True)
class ReconciliationDelta:
    rooms: CategoryDelta[RoomAllocation] = field(default_factory=CategoryDelta)
    guests: CategoryDelta[Guest] = field(default_factory=CategoryDelta)
    charges: CategoryDelta[SpecialCharge] = field(default_factory=CategoryDelta)

    @property
    def is_empty(self) -> bool:
        return self.rooms.is_empty and self.guests.is_empty and self.charges.is_empty
