"""HTTP controller layer for allocation proposals, quotes and reservation submits."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from reservation_engine.controllers.dependencies import get_repository, get_reservation_service
from reservation_engine.domain.constraints import ReservationValidationError
from reservation_engine.domain.models import (
    DRAFT,
    AllocationOption,
    AutoCharge,
    Discount,
    DiscountType,
    EntityIdentity,
    Guest,
    GuestRequest,
    GuestType,
    ManualCharge,
    Persisted,
    RateType,
    RoomAllocation,
    SpecialCharge,
    new_key,
)
from reservation_engine.repository.data_repository import DataRepository, PersistenceError
from reservation_engine.services.charge_service import OverflowCache
from reservation_engine.services.reconciliation_service import SubmissionReport
from reservation_engine.services.reservation_service import (
    ReservationNotFoundError,
    ReservationSubmission,
    ReservationWorkflowService,
)
from reservation_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["reservations"])


def _identity(record_id: Optional[str]) -> EntityIdentity:
    return Persisted(record_id) if record_id else DRAFT


class GuestRequestPayload(BaseModel):
    """Input DTO validated before entering service layer."""

    guest_count: int
    guest_type: GuestType = GuestType.INDIVIDUAL
    check_in: date
    check_out: date

    def to_domain(self) -> GuestRequest:
        return GuestRequest(
            guest_count=self.guest_count,
            guest_type=self.guest_type,
            check_in=self.check_in,
            check_out=self.check_out,
        )


class AllocationOptionsRequest(GuestRequestPayload):
    reservation_id: Optional[str] = None


class RoomAllocationPayload(BaseModel):
    room_id: str = ""
    room_number: str = ""
    room_type: str = ""
    capacity: int = Field(default=0, ge=0)
    tariff: Decimal = Decimal("0")
    guest_count: int
    key: Optional[str] = None
    record_id: Optional[str] = None

    def to_domain(self) -> RoomAllocation:
        return RoomAllocation(
            room_id=self.room_id,
            room_number=self.room_number,
            room_type=self.room_type,
            capacity=self.capacity,
            tariff=self.tariff,
            guest_count=self.guest_count,
            key=self.key or new_key(),
            identity=_identity(self.record_id),
        )


class GuestPayload(BaseModel):
    name: str = Field(max_length=200)
    phone: str = Field(max_length=50)
    whatsapp: str = Field(default="", max_length=50)
    telegram: str = Field(default="", max_length=100)
    is_primary: bool = False
    key: Optional[str] = None
    record_id: Optional[str] = None

    def to_domain(self) -> Guest:
        return Guest(
            name=self.name,
            phone=self.phone,
            whatsapp=self.whatsapp,
            telegram=self.telegram,
            is_primary=self.is_primary,
            key=self.key or new_key(),
            identity=_identity(self.record_id),
        )


class ChargePayload(BaseModel):
    name: str
    rate: Decimal
    quantity: int = 1
    description: str = ""
    master_id: Optional[str] = None
    is_auto_generated: bool = False
    key: Optional[str] = None
    record_id: Optional[str] = None

    @field_validator("master_id")
    @classmethod
    def blank_master_id_is_custom(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def to_domain(self) -> SpecialCharge:
        if self.is_auto_generated and self.master_id is not None:
            return AutoCharge(
                master_id=self.master_id,
                name=self.name,
                rate=self.rate,
                quantity=self.quantity,
                description=self.description,
                identity=_identity(self.record_id),
            )
        return ManualCharge(
            name=self.name,
            rate=self.rate,
            quantity=self.quantity,
            description=self.description,
            master_id=self.master_id,
            key=self.key or new_key(),
            identity=_identity(self.record_id),
        )


class DiscountPayload(BaseModel):
    discount_type: DiscountType = DiscountType.NONE
    value: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("value")
    @classmethod
    def validate_percentage_bounds(cls, value: Decimal, info: ValidationInfo) -> Decimal:
        if info.data.get("discount_type") == DiscountType.PERCENTAGE and value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return value

    def to_domain(self) -> Discount:
        return Discount(discount_type=self.discount_type, value=self.value)


class OverflowCachePayload(BaseModel):
    extra_guest_count: int = Field(ge=0)
    nights: int = Field(ge=0)


class QuoteRequest(BaseModel):
    check_in: date
    check_out: date
    rooms: list[RoomAllocationPayload] = Field(default_factory=list)
    charges: list[ChargePayload] = Field(default_factory=list)
    discount: DiscountPayload = Field(default_factory=DiscountPayload)
    cache: Optional[OverflowCachePayload] = None


class ReservationPayload(BaseModel):
    request: GuestRequestPayload
    rooms: list[RoomAllocationPayload] = Field(default_factory=list)
    guests: list[GuestPayload] = Field(default_factory=list)
    charges: list[ChargePayload] = Field(default_factory=list)
    discount: DiscountPayload = Field(default_factory=DiscountPayload)
    payment: Decimal = Field(default=Decimal("0"), ge=0)

    def to_domain(self) -> ReservationSubmission:
        return ReservationSubmission(
            request=self.request.to_domain(),
            rooms=tuple(room.to_domain() for room in self.rooms),
            guests=tuple(guest.to_domain() for guest in self.guests),
            charges=tuple(charge.to_domain() for charge in self.charges),
            discount=self.discount.to_domain(),
            payment=self.payment,
        )


class RoomAllocationView(BaseModel):
    room_id: str
    room_number: str
    room_type: str
    capacity: int
    tariff: Decimal
    guest_count: int
    key: str
    record_id: Optional[str] = None

    @classmethod
    def from_domain(cls, allocation: RoomAllocation) -> RoomAllocationView:
        return cls(
            room_id=allocation.room_id,
            room_number=allocation.room_number,
            room_type=allocation.room_type,
            capacity=allocation.capacity,
            tariff=allocation.tariff,
            guest_count=allocation.guest_count,
            key=allocation.key,
            record_id=allocation.identity.record_id,
        )


class ChargeView(BaseModel):
    name: str
    rate: Decimal
    quantity: int
    amount: Decimal
    description: str
    master_id: Optional[str] = None
    is_auto_generated: bool
    key: str
    record_id: Optional[str] = None

    @classmethod
    def from_domain(cls, charge: SpecialCharge) -> ChargeView:
        return cls(
            name=charge.name,
            rate=charge.rate,
            quantity=charge.quantity,
            amount=charge.amount,
            description=charge.description,
            master_id=charge.master_id,
            is_auto_generated=charge.is_auto_generated,
            key=charge.key,
            record_id=charge.identity.record_id,
        )


class GuestView(BaseModel):
    name: str
    phone: str
    whatsapp: str
    telegram: str
    is_primary: bool
    key: str
    record_id: Optional[str] = None


class AllocationOptionResponse(BaseModel):
    strategy: str
    rooms: list[RoomAllocationView]
    allocated_guests: int = Field(ge=0)
    unplaced_guests: int = Field(ge=0)
    is_complete: bool
    nightly_tariff: Decimal

    @classmethod
    def from_domain(cls, option: AllocationOption) -> AllocationOptionResponse:
        return cls(
            strategy=option.strategy.value,
            rooms=[RoomAllocationView.from_domain(item) for item in option.allocations],
            allocated_guests=option.allocated_guests,
            unplaced_guests=option.unplaced_guests,
            is_complete=option.is_complete,
            nightly_tariff=option.nightly_tariff,
        )


class AllocationOptionsResponse(BaseModel):
    options: list[AllocationOptionResponse]


class PricingBreakdownResponse(BaseModel):
    nights: int = Field(ge=0)
    room_tariff_total: Decimal
    special_charges_total: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class QuoteResponse(BaseModel):
    charges: list[ChargeView]
    cache: Optional[OverflowCachePayload] = None
    breakdown: PricingBreakdownResponse


class OperationOutcomeResponse(BaseModel):
    category: str
    action: str
    entity_id: Optional[str] = None
    succeeded: bool
    error: Optional[str] = None
    created_id: Optional[str] = None


class SubmissionReportResponse(BaseModel):
    reservation_id: str
    status: str
    message: str
    outcomes: list[OperationOutcomeResponse]

    @classmethod
    def from_domain(cls, report: SubmissionReport) -> SubmissionReportResponse:
        return cls(**report.to_dict())


class ReservationResponse(BaseModel):
    reservation_id: str
    guest_count: int
    guest_type: GuestType
    check_in: date
    check_out: date
    status: str
    discount: DiscountPayload
    total_price: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    rooms: list[RoomAllocationView]
    guests: list[GuestView]
    charges: list[ChargeView]


class RoomResponse(BaseModel):
    room_id: str
    room_number: str
    room_type: str
    capacity: int = Field(gt=0)
    tariff: Decimal
    is_available: bool


class SpecialChargeMasterResponse(BaseModel):
    charge_id: str
    name: str
    default_rate: Decimal
    rate_type: RateType
    description: str


def _validation_exception(exc: ReservationValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": str(exc),
            "issues": [issue.to_dict() for issue in exc.issues],
        },
    )


@router.post(
    "/allocation_options",
    response_model=AllocationOptionsResponse,
    status_code=status.HTTP_200_OK,
)
async def allocation_options(
    payload: AllocationOptionsRequest,
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> AllocationOptionsResponse:
    """Propose comfort, price and minimal-room allocations for a guest request."""
    try:
        options = service.propose_allocations(
            payload.to_domain(),
            reservation_id=payload.reservation_id,
        )
        return AllocationOptionsResponse(
            options=[AllocationOptionResponse.from_domain(option) for option in options]
        )
    except ReservationValidationError as exc:
        raise _validation_exception(exc) from exc
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected allocation proposal failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate allocation options",
        ) from exc


@router.post("/quote", response_model=QuoteResponse, status_code=status.HTTP_200_OK)
async def quote(
    payload: QuoteRequest,
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> QuoteResponse:
    """Refresh the extra-person charge and price the current edit session."""
    try:
        cache = (
            OverflowCache(
                extra_guest_count=payload.cache.extra_guest_count,
                nights=payload.cache.nights,
            )
            if payload.cache is not None
            else None
        )
        result = service.quote(
            [room.to_domain() for room in payload.rooms],
            [charge.to_domain() for charge in payload.charges],
            payload.check_in,
            payload.check_out,
            discount=payload.discount.to_domain(),
            cache=cache,
        )
        return QuoteResponse(
            charges=[ChargeView.from_domain(charge) for charge in result.charges],
            cache=(
                OverflowCachePayload(
                    extra_guest_count=result.cache.extra_guest_count,
                    nights=result.cache.nights,
                )
                if result.cache is not None
                else None
            ),
            breakdown=PricingBreakdownResponse(
                nights=result.breakdown.nights,
                room_tariff_total=result.breakdown.room_tariff_total,
                special_charges_total=result.breakdown.special_charges_total,
                subtotal=result.breakdown.subtotal,
                discount=result.breakdown.discount,
                total=result.breakdown.total,
            ),
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected quote failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute quote",
        ) from exc


@router.post(
    "/reservations",
    response_model=SubmissionReportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationPayload,
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> SubmissionReportResponse:
    try:
        report = service.create_reservation(payload.to_domain())
        return SubmissionReportResponse.from_domain(report)
    except ReservationValidationError as exc:
        raise _validation_exception(exc) from exc
    except PersistenceError as exc:
        logger.error("Reservation header could not be stored | error=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store reservation",
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation create failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create reservation",
        ) from exc


@router.put(
    "/reservations/{reservation_id}",
    response_model=SubmissionReportResponse,
    status_code=status.HTTP_200_OK,
)
async def update_reservation(
    reservation_id: str,
    payload: ReservationPayload,
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> SubmissionReportResponse:
    """Reconcile the edited reservation; partial failures come back with status=partial."""
    try:
        report = service.update_reservation(reservation_id, payload.to_domain())
        return SubmissionReportResponse.from_domain(report)
    except ReservationValidationError as exc:
        raise _validation_exception(exc) from exc
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update reservation",
        ) from exc


@router.get(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_reservation(
    reservation_id: str,
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        details = service.get_reservation(reservation_id)
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    record = details.record
    return ReservationResponse(
        reservation_id=record.reservation_id,
        guest_count=record.guest_count,
        guest_type=record.guest_type,
        check_in=record.check_in,
        check_out=record.check_out,
        status=record.status,
        discount=DiscountPayload(
            discount_type=record.discount.discount_type,
            value=record.discount.value,
        ),
        total_price=details.balance.total,
        amount_paid=details.balance.amount_paid,
        balance_due=details.balance.balance_due,
        rooms=[RoomAllocationView.from_domain(room) for room in details.state.rooms],
        guests=[
            GuestView(
                name=guest.name,
                phone=guest.phone,
                whatsapp=guest.whatsapp,
                telegram=guest.telegram,
                is_primary=guest.is_primary,
                key=guest.key,
                record_id=guest.identity.record_id,
            )
            for guest in details.state.guests
        ],
        charges=[ChargeView.from_domain(charge) for charge in details.state.charges],
    )


@router.get("/rooms", response_model=list[RoomResponse], status_code=status.HTTP_200_OK)
async def list_rooms(
    check_in: date,
    check_out: date,
    reservation_id: Optional[str] = None,
    include_unavailable: bool = False,
    repository: DataRepository = Depends(get_repository),
) -> list[RoomResponse]:
    rooms = repository.get_available_rooms(
        check_in,
        check_out,
        reservation_id=reservation_id,
        include_unavailable=include_unavailable,
    )
    return [
        RoomResponse(
            room_id=room.room_id,
            room_number=room.room_number,
            room_type=room.room_type,
            capacity=room.capacity,
            tariff=room.tariff,
            is_available=room.is_available,
        )
        for room in rooms
    ]


@router.get(
    "/special_charges",
    response_model=list[SpecialChargeMasterResponse],
    status_code=status.HTTP_200_OK,
)
async def list_special_charges(
    service: ReservationWorkflowService = Depends(get_reservation_service),
) -> list[SpecialChargeMasterResponse]:
    return [
        SpecialChargeMasterResponse(
            charge_id=entry.charge_id,
            name=entry.name,
            default_rate=entry.default_rate,
            rate_type=entry.rate_type,
            description=entry.description,
        )
        for entry in service.list_special_charges()
    ]
