"""Reservation orchestration: propose, quote, create and edit a reservation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from reservation_engine.domain.constraints import (
    ReservationLimits,
    ensure_valid,
    validate_allocations,
    validate_charges,
    validate_guest_request,
    validate_guests,
    validate_reservation_limits,
    validate_room_availability,
)
from reservation_engine.domain.models import (
    NO_DISCOUNT,
    AllocationOption,
    Discount,
    Guest,
    GuestRequest,
    PricingBreakdown,
    ReservationState,
    RoomAllocation,
    SpecialCharge,
    SpecialChargeMaster,
)
from reservation_engine.repository.data_repository import (
    DataRepository,
    PersistenceError,
    ReservationRecord,
)
from reservation_engine.services.allocation_service import generate_options
from reservation_engine.services.charge_service import (
    OverflowCache,
    find_auto_charge,
    sync_auto_charge,
)
from reservation_engine.services.pricing_service import (
    BalanceSummary,
    compute_nights,
    price,
    settle_balance,
)
from reservation_engine.services.reconciliation_service import (
    OperationOutcome,
    SubmissionReport,
    apply_delta,
    reconcile,
)
from reservation_engine.utils.config import Settings, get_settings
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)


class ReservationNotFoundError(LookupError):
    """Raised when an edit targets a reservation id that does not exist."""


@dataclass(frozen=True)
class ReservationSubmission:
    request: GuestRequest
    rooms: tuple[RoomAllocation, ...]
    guests: tuple[Guest, ...] = ()
    charges: tuple[SpecialCharge, ...] = ()
    discount: Discount = NO_DISCOUNT
    payment: Decimal = Decimal("0")


@dataclass(frozen=True)
class Quote:
    charges: tuple[SpecialCharge, ...]
    cache: Optional[OverflowCache]
    breakdown: PricingBreakdown


@dataclass(frozen=True)
class ReservationDetails:
    record: ReservationRecord
    state: ReservationState
    balance: BalanceSummary


class ReservationWorkflowService:
    """Coordinates propose -> quote -> submit for new and edited reservations."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._limits = ReservationLimits(
            max_guest_count=self._settings.max_guest_count,
            max_guests_per_room=self._settings.max_guests_per_room,
            max_charge_quantity=self._settings.max_charge_quantity,
            max_charge_description_length=self._settings.max_charge_description_length,
        )
        validate_reservation_limits(self._limits)

    def list_special_charges(self) -> list[SpecialChargeMaster]:
        return self._repository.list_active_charges()

    def propose_allocations(
        self,
        request: GuestRequest,
        reservation_id: Optional[str] = None,
    ) -> list[AllocationOption]:
        ensure_valid(validate_guest_request(request, self._limits))
        if reservation_id is not None:
            self._require_reservation(reservation_id)
        rooms = self._repository.get_available_rooms(
            request.check_in,
            request.check_out,
            reservation_id=reservation_id,
            include_unavailable=reservation_id is not None,
        )
        return generate_options(request, rooms)

    def quote(
        self,
        allocations: Sequence[RoomAllocation],
        charges: Sequence[SpecialCharge],
        check_in: date,
        check_out: date,
        discount: Discount = NO_DISCOUNT,
        cache: Optional[OverflowCache] = None,
    ) -> Quote:
        """Refresh the extra-person charge for the session and price the stay."""
        nights = compute_nights(check_in, check_out)
        synced_charges, next_cache = sync_auto_charge(
            charges,
            allocations,
            nights,
            self._repository.list_active_charges(),
            cache=cache,
            charge_name=self._settings.extra_person_charge_name,
        )
        breakdown = price(
            allocations,
            synced_charges,
            discount,
            nights,
            clamp_negative_total=self._settings.pricing_clamp_negative_total,
        )
        return Quote(charges=tuple(synced_charges), cache=next_cache, breakdown=breakdown)

    def create_reservation(self, submission: ReservationSubmission) -> SubmissionReport:
        current, breakdown = self._prepare(submission, reservation_id=None)
        balance = settle_balance(breakdown.total, submission.payment)
        request = submission.request
        reservation_id = self._repository.create_reservation(
            guest_count=request.guest_count,
            guest_type=request.guest_type,
            check_in=request.check_in,
            check_out=request.check_out,
            discount=submission.discount,
            total_price=breakdown.total,
            advance_payment=balance.amount_paid,
            balance_payment=balance.balance_due,
        )
        if balance.amount_paid > 0:
            self._repository.record_payment(reservation_id, balance.amount_paid)

        report = apply_delta(self._repository, reservation_id, reconcile(ReservationState(), current))
        logger.info(
            "Reservation created | reservation_id=%s | rooms=%s | total=%s | status=%s",
            reservation_id,
            len(current.rooms),
            breakdown.total,
            report.status,
        )
        return report

    def load_reservation_state(self, reservation_id: str) -> ReservationState:
        self._require_reservation(reservation_id)
        return self._repository.load_reservation_state(reservation_id)

    def get_reservation(self, reservation_id: str) -> ReservationDetails:
        record = self._require_reservation(reservation_id)
        return ReservationDetails(
            record=record,
            state=self._repository.load_reservation_state(reservation_id),
            balance=settle_balance(record.total_price, self._repository.total_paid(reservation_id)),
        )

    def update_reservation(
        self,
        reservation_id: str,
        submission: ReservationSubmission,
    ) -> SubmissionReport:
        self._require_reservation(reservation_id)
        current, breakdown = self._prepare(submission, reservation_id=reservation_id)
        original = self._repository.load_reservation_state(reservation_id)
        delta = reconcile(original, _adopt_stored_auto_charge(original, current))
        logger.info(
            "Reservation delta computed | reservation_id=%s | room_changes=%s | guest_changes=%s | charge_changes=%s",
            reservation_id,
            not delta.rooms.is_empty,
            not delta.guests.is_empty,
            not delta.charges.is_empty,
        )

        report = apply_delta(self._repository, reservation_id, delta)
        header_outcome = self._update_header(reservation_id, submission, breakdown)
        return SubmissionReport(
            reservation_id=reservation_id,
            outcomes=report.outcomes + (header_outcome,),
        )

    def _require_reservation(self, reservation_id: str) -> ReservationRecord:
        record = self._repository.get_reservation(reservation_id)
        if record is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} was not found")
        return record

    def _prepare(
        self,
        submission: ReservationSubmission,
        reservation_id: Optional[str],
    ) -> tuple[ReservationState, PricingBreakdown]:
        """Validate a submission and return its state with a freshly derived auto charge."""
        request = submission.request
        issues = validate_guest_request(request, self._limits)
        issues += validate_allocations(submission.rooms, request.guest_count, self._limits)
        issues += validate_guests(submission.guests)
        if not issues:
            available = self._repository.get_available_rooms(
                request.check_in,
                request.check_out,
                reservation_id=reservation_id,
            )
            issues += validate_room_availability(
                submission.rooms,
                {room.room_id for room in available},
            )

        quote = self.quote(
            submission.rooms,
            submission.charges,
            request.check_in,
            request.check_out,
            discount=submission.discount,
        )
        issues += validate_charges(quote.charges, self._limits)
        if issues:
            logger.warning(
                "Reservation submission rejected | reservation_id=%s | issues=%s",
                reservation_id,
                [issue.code for issue in issues],
            )
        ensure_valid(issues)

        state = ReservationState(
            rooms=tuple(submission.rooms),
            guests=tuple(submission.guests),
            charges=quote.charges,
        )
        return state, quote.breakdown

    def _update_header(
        self,
        reservation_id: str,
        submission: ReservationSubmission,
        breakdown: PricingBreakdown,
    ) -> OperationOutcome:
        request = submission.request
        try:
            if submission.payment > 0:
                self._repository.record_payment(reservation_id, submission.payment)
            balance = settle_balance(breakdown.total, self._repository.total_paid(reservation_id))
            self._repository.update_reservation(
                reservation_id,
                guest_count=request.guest_count,
                guest_type=request.guest_type,
                check_in=request.check_in,
                check_out=request.check_out,
                discount=submission.discount,
                total_price=balance.total,
                advance_payment=balance.amount_paid,
                balance_payment=balance.balance_due,
            )
        except PersistenceError as exc:
            logger.error(
                "Reservation header update failed | reservation_id=%s | error=%s",
                reservation_id,
                exc,
            )
            return OperationOutcome(
                "reservation",
                "update",
                reservation_id,
                succeeded=False,
                error=str(exc),
            )
        return OperationOutcome("reservation", "update", reservation_id, succeeded=True)


def _adopt_stored_auto_charge(
    original: ReservationState,
    current: ReservationState,
) -> ReservationState:
    """Point a freshly derived surcharge at the stored record so it is updated in place."""
    stored = find_auto_charge(original.charges)
    derived = find_auto_charge(current.charges)
    if stored is None or derived is None or derived.identity.record_id is not None:
        return current
    adopted = replace(derived, identity=stored.identity)
    return replace(
        current,
        charges=tuple(adopted if charge is derived else charge for charge in current.charges),
    )
