"""Domain-level validation rules applied before anything is priced or persisted."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Collection, Iterable, Sequence

from reservation_engine.domain.models import (
    Guest,
    GuestRequest,
    ManualCharge,
    RoomAllocation,
    SpecialCharge,
)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


class ReservationValidationError(ValueError):
    """Raised when reservation input fails form-level validation."""

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = tuple(issues)
        super().__init__("; ".join(issue.message for issue in self.issues))


@dataclass(frozen=True)
class ReservationLimits:
    max_guest_count: int
    max_guests_per_room: int
    max_charge_quantity: int
    max_charge_description_length: int


def validate_reservation_limits(limits: ReservationLimits) -> None:
    if limits.max_guest_count <= 0:
        raise ValueError("max_guest_count must be > 0")
    if limits.max_guests_per_room <= 0:
        raise ValueError("max_guests_per_room must be > 0")
    if limits.max_charge_quantity <= 0:
        raise ValueError("max_charge_quantity must be > 0")
    if limits.max_charge_description_length < 0:
        raise ValueError("max_charge_description_length must be >= 0")


def validate_guest_request(
    request: GuestRequest,
    limits: ReservationLimits,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if request.guest_count < 1:
        issues.append(
            ValidationIssue("guest_count", "Guest count must be at least 1", "INVALID_GUEST_COUNT")
        )
    elif request.guest_count > limits.max_guest_count:
        issues.append(
            ValidationIssue(
                "guest_count",
                f"Guest count cannot exceed {limits.max_guest_count}",
                "GUEST_COUNT_TOO_HIGH",
            )
        )
    if request.check_out <= request.check_in:
        issues.append(
            ValidationIssue(
                "check_out",
                "Check-out date must be after check-in date",
                "INVALID_DATE_RANGE",
            )
        )
    return issues


def validate_allocations(
    allocations: Sequence[RoomAllocation],
    requested_guests: int,
    limits: ReservationLimits,
) -> list[ValidationIssue]:
    if not allocations:
        return [
            ValidationIssue("allocation", "Please allocate at least one room", "NO_ROOMS")
        ]

    issues: list[ValidationIssue] = []
    seen_room_ids: set[str] = set()
    for allocation in allocations:
        if not allocation.room_id:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.room_id",
                    "Please select a room",
                    "ROOM_NOT_SELECTED",
                )
            )
        elif allocation.room_id in seen_room_ids:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.room_id",
                    f"Room {allocation.room_number} is allocated more than once",
                    "DUPLICATE_ROOM",
                )
            )
        seen_room_ids.add(allocation.room_id)

        if allocation.guest_count < 1:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.guest_count",
                    "Guest count must be a positive integer",
                    "INVALID_GUEST_COUNT",
                )
            )
        elif allocation.guest_count > limits.max_guests_per_room:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.guest_count",
                    f"Guest count cannot exceed {limits.max_guests_per_room} per room",
                    "GUEST_COUNT_TOO_HIGH",
                )
            )
        if allocation.tariff < 0:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.tariff",
                    "Tariff per night cannot be negative",
                    "NEGATIVE_TARIFF",
                )
            )

    total_allocated = sum(allocation.guest_count for allocation in allocations)
    if total_allocated != requested_guests:
        issues.append(
            ValidationIssue(
                "guest_count",
                (
                    f"Total allocated guests ({total_allocated}) must equal "
                    f"requested guests ({requested_guests})"
                ),
                "GUEST_SUM_MISMATCH",
            )
        )
    return issues


def validate_room_availability(
    allocations: Iterable[RoomAllocation],
    available_room_ids: Collection[str],
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for allocation in allocations:
        if allocation.room_id and allocation.room_id not in available_room_ids:
            issues.append(
                ValidationIssue(
                    f"rooms.{allocation.key}.room_id",
                    f"Room {allocation.room_number} is not available for the selected dates",
                    "ROOM_UNAVAILABLE",
                )
            )
    return issues


def validate_charges(
    charges: Iterable[SpecialCharge],
    limits: ReservationLimits,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for charge in charges:
        prefix = f"charges.{charge.key}"
        if charge.rate < Decimal("0"):
            issues.append(
                ValidationIssue(f"{prefix}.rate", "Rate cannot be negative", "NEGATIVE_RATE")
            )
        # Auto-generated surcharges are system owned and not bounded by form limits.
        if not isinstance(charge, ManualCharge):
            continue
        if not charge.name.strip():
            issues.append(
                ValidationIssue(f"{prefix}.name", "Charge name is required", "REQUIRED_FIELD")
            )
        if charge.quantity < 1:
            issues.append(
                ValidationIssue(
                    f"{prefix}.quantity",
                    "Quantity must be a positive integer",
                    "INVALID_QUANTITY",
                )
            )
        elif charge.quantity > limits.max_charge_quantity:
            issues.append(
                ValidationIssue(
                    f"{prefix}.quantity",
                    f"Quantity cannot exceed {limits.max_charge_quantity}",
                    "QUANTITY_TOO_HIGH",
                )
            )
        if len(charge.description) > limits.max_charge_description_length:
            issues.append(
                ValidationIssue(
                    f"{prefix}.description",
                    (
                        "Description cannot exceed "
                        f"{limits.max_charge_description_length} characters"
                    ),
                    "DESCRIPTION_TOO_LONG",
                )
            )
    return issues


def validate_guests(guests: Iterable[Guest]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for guest in guests:
        if not guest.name.strip():
            issues.append(
                ValidationIssue(f"guests.{guest.key}.name", "Guest name is required", "REQUIRED_FIELD")
            )
        if not guest.phone.strip():
            issues.append(
                ValidationIssue(
                    f"guests.{guest.key}.phone",
                    "Guest phone is required",
                    "REQUIRED_FIELD",
                )
            )
    return issues


def ensure_valid(issues: Sequence[ValidationIssue]) -> None:
    if issues:
        raise ReservationValidationError(issues)
