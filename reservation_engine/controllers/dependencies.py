"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from reservation_engine.repository.data_repository import DataRepository
from reservation_engine.services.reservation_service import ReservationWorkflowService
from reservation_engine.utils.config import get_settings


def get_repository(request: Request) -> DataRepository:
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Repository is not initialized",
        )
    return repository


def get_reservation_service(request: Request) -> ReservationWorkflowService:
    service = getattr(request.app.state, "reservation_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = ReservationWorkflowService(repository=repository, settings=get_settings())
            request.app.state.reservation_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reservation service is not initialized",
        )
    return service
