"""Diff an edited reservation against its stored state and submit the delta."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from reservation_engine.domain.models import (
    DRAFT,
    CategoryDelta,
    Guest,
    ReconciliationDelta,
    Replacement,
    ReservationState,
    RoomAllocation,
    SpecialCharge,
)
from reservation_engine.repository.data_repository import PersistenceError
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


ROOM_IDENTITY_FIELDS = ("room_id", "room_number")
CHARGE_IDENTITY_FIELDS = ("master_id",)
GUEST_IDENTITY_FIELDS: tuple[str, ...] = ()

# Session-only fields never count as a change.
_IGNORED_FIELDS = frozenset({"key", "identity"})

EntityT = TypeVar("EntityT")


class ReservationStore(Protocol):
    def create_room(self, reservation_id: str, allocation: RoomAllocation) -> str: ...

    def update_room(self, reservation_id: str, record_id: str, allocation: RoomAllocation) -> None: ...

    def delete_room(self, reservation_id: str, record_id: str) -> None: ...

    def create_guest(self, reservation_id: str, guest: Guest) -> str: ...

    def update_guest(self, reservation_id: str, record_id: str, guest: Guest) -> None: ...

    def delete_guest(self, reservation_id: str, record_id: str) -> None: ...

    def upsert_special_charge(self, reservation_id: str, charge: SpecialCharge) -> str: ...

    def delete_special_charge(self, reservation_id: str, record_id: str) -> None: ...


def _payload(entity: object) -> dict[str, object]:
    return {
        item.name: getattr(entity, item.name)
        for item in fields(entity)
        if item.name not in _IGNORED_FIELDS
    }


def _same_kind(left: object, right: object) -> bool:
    return type(left) is type(right)


def reconcile_category(
    original: Sequence[EntityT],
    current: Sequence[EntityT],
    identity_fields: Sequence[str],
) -> CategoryDelta[EntityT]:
    """Classify each entity as create, update, replace or delete by persisted id."""
    originals = {
        entity.identity.record_id: entity
        for entity in original
        if entity.identity.record_id is not None
    }

    creates: list[EntityT] = []
    updates: list[EntityT] = []
    replaces: list[Replacement[EntityT]] = []
    matched: set[str] = set()

    for entity in current:
        record_id = entity.identity.record_id
        previous = originals.get(record_id) if record_id is not None else None
        if previous is None or record_id in matched:
            creates.append(entity)
            continue
        matched.add(record_id)

        identity_changed = not _same_kind(previous, entity) or any(
            getattr(previous, name) != getattr(entity, name) for name in identity_fields
        )
        if identity_changed:
            replaces.append(Replacement(deleted_id=record_id, created=entity))
        elif _payload(previous) != _payload(entity):
            updates.append(entity)

    deletes = tuple(record_id for record_id in originals if record_id not in matched)
    return CategoryDelta(
        creates=tuple(creates),
        updates=tuple(updates),
        replaces=tuple(replaces),
        deletes=deletes,
    )


def reconcile(original: ReservationState, current: ReservationState) -> ReconciliationDelta:
    return ReconciliationDelta(
        rooms=reconcile_category(original.rooms, current.rooms, ROOM_IDENTITY_FIELDS),
        guests=reconcile_category(original.guests, current.guests, GUEST_IDENTITY_FIELDS),
        charges=reconcile_category(original.charges, current.charges, CHARGE_IDENTITY_FIELDS),
    )


@dataclass(frozen=True)
class OperationOutcome:
    category: str
    action: str
    entity_id: Optional[str]
    succeeded: bool
    error: Optional[str] = None
    created_id: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "action": self.action,
            "entity_id": self.entity_id,
            "succeeded": self.succeeded,
            "error": self.error,
            "created_id": self.created_id,
        }


@dataclass(frozen=True)
class SubmissionReport:
    reservation_id: str
    outcomes: tuple[OperationOutcome, ...] = ()

    @property
    def succeeded(self) -> tuple[OperationOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> tuple[OperationOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.succeeded)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def is_partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)

    @property
    def summary_message(self) -> str:
        if self.all_succeeded:
            return "Reservation saved successfully"
        return (
            f"Reservation saved with errors: {len(self.failed)} of "
            f"{len(self.outcomes)} operations failed"
        )

    @property
    def status(self) -> str:
        if self.all_succeeded:
            return "ok"
        return "partial" if self.is_partial else "failed"

    def to_dict(self) -> dict[str, object]:
        return {
            "reservation_id": self.reservation_id,
            "status": self.status,
            "message": self.summary_message,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class _Submission:
    """Runs store calls one at a time and records each outcome."""

    def __init__(self, reservation_id: str) -> None:
        self.reservation_id = reservation_id
        self.outcomes: list[OperationOutcome] = []

    def run(
        self,
        category: str,
        action: str,
        entity_id: Optional[str],
        operation: Callable[[], object],
    ) -> None:
        try:
            result = operation()
        except PersistenceError as exc:
            logger.error(
                "Persistence operation failed | reservation_id=%s | category=%s | action=%s | entity_id=%s | error=%s",
                self.reservation_id,
                category,
                action,
                entity_id,
                exc,
            )
            self.outcomes.append(
                OperationOutcome(category, action, entity_id, succeeded=False, error=str(exc))
            )
            return
        created_id = result if isinstance(result, str) else None
        self.outcomes.append(
            OperationOutcome(category, action, entity_id, succeeded=True, created_id=created_id)
        )


def apply_delta(
    store: ReservationStore,
    reservation_id: str,
    delta: ReconciliationDelta,
) -> SubmissionReport:
    """Submit deletes, then replaces, then creates and updates, without rollback."""
    submission = _Submission(reservation_id)
    rooms, guests, charges = delta.rooms, delta.guests, delta.charges

    for record_id in rooms.deletes:
        submission.run("rooms", "delete", record_id, lambda rid=record_id: store.delete_room(reservation_id, rid))
    for record_id in guests.deletes:
        submission.run("guests", "delete", record_id, lambda rid=record_id: store.delete_guest(reservation_id, rid))
    for record_id in charges.deletes:
        submission.run(
            "charges",
            "delete",
            record_id,
            lambda rid=record_id: store.delete_special_charge(reservation_id, rid),
        )

    for item in rooms.replaces:
        submission.run(
            "rooms",
            "replace_delete",
            item.deleted_id,
            lambda rid=item.deleted_id: store.delete_room(reservation_id, rid),
        )
        submission.run(
            "rooms",
            "replace_create",
            item.deleted_id,
            lambda entity=item.created: store.create_room(reservation_id, entity),
        )
    for item in charges.replaces:
        submission.run(
            "charges",
            "replace_delete",
            item.deleted_id,
            lambda rid=item.deleted_id: store.delete_special_charge(reservation_id, rid),
        )
        submission.run(
            "charges",
            "replace_create",
            item.deleted_id,
            lambda entity=item.created: store.upsert_special_charge(
                reservation_id,
                _as_draft(entity),
            ),
        )

    for allocation in rooms.creates:
        submission.run("rooms", "create", None, lambda entity=allocation: store.create_room(reservation_id, entity))
    for guest in guests.creates:
        submission.run("guests", "create", None, lambda entity=guest: store.create_guest(reservation_id, entity))
    for charge in charges.creates:
        submission.run(
            "charges",
            "create",
            None,
            lambda entity=charge: store.upsert_special_charge(reservation_id, _as_draft(entity)),
        )

    for allocation in rooms.updates:
        record_id = allocation.identity.record_id
        submission.run(
            "rooms",
            "update",
            record_id,
            lambda rid=record_id, entity=allocation: store.update_room(reservation_id, rid, entity),
        )
    for guest in guests.updates:
        record_id = guest.identity.record_id
        submission.run(
            "guests",
            "update",
            record_id,
            lambda rid=record_id, entity=guest: store.update_guest(reservation_id, rid, entity),
        )
    for charge in charges.updates:
        submission.run(
            "charges",
            "update",
            charge.identity.record_id,
            lambda entity=charge: store.upsert_special_charge(reservation_id, entity),
        )

    report = SubmissionReport(reservation_id=reservation_id, outcomes=tuple(submission.outcomes))
    log = logger.info if report.all_succeeded else logger.warning
    log(
        "Reconciliation submitted | reservation_id=%s | operations=%s | failed=%s",
        reservation_id,
        len(report.outcomes),
        len(report.failed),
    )
    return report


def _as_draft(charge: SpecialCharge) -> SpecialCharge:
    """Strip a stale record id so the store inserts instead of updating."""
    if charge.identity.record_id is None:
        return charge
    return replace(charge, identity=DRAFT)
