"""HTTP controller layer for creating, listing and cancelling reservations."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from reservations.controllers.dependencies import get_actor, get_reservation_service
from reservations.domain.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    UnknownResourceError,
    UnknownResourceTypeError,
    ValidationError,
)
from reservations.domain.models import Reservation, ReservationRequest
from reservations.services.reservation_service import ReservationService
from reservations.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["reservations"])


class CreateReservationRequest(BaseModel):
    """Input DTO; content rules are enforced by the service so that the
    first failing rule is reported consistently."""

    resource_type: str
    resource_instance_id: Optional[str] = None
    date: date
    shift: str
    periods: list[str] = Field(default_factory=list)
    requester: str = ""
    group_label: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)
    notes: str = ""


class ReservationResponse(BaseModel):
    id: str
    resource_type: str
    resource_instance_id: str
    date: date
    shift: str
    periods: list[str]
    requester: str
    group_label: str
    attributes: dict[str, Any]
    notes: str
    created_at: datetime
    created_by: Optional[str] = None

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            resource_type=reservation.resource_type.value,
            resource_instance_id=reservation.resource_instance_id,
            date=reservation.date,
            shift=reservation.shift.value,
            periods=[period.value for period in reservation.periods],
            requester=reservation.requester,
            group_label=reservation.group_label,
            attributes=reservation.attributes,
            notes=reservation.notes,
            created_at=reservation.created_at,
            created_by=reservation.created_by,
        )


class BookedSlotResponse(BaseModel):
    reservation_id: str
    period: str
    requester: str
    group_label: str


class SlotAvailabilityResponse(BaseModel):
    resource_instance_id: str
    shift: str
    booked: list[BookedSlotResponse]
    free_periods: list[str]


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.error("Storage failure surfaced to client: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Reservation storage is temporarily unavailable",
    )


def _validation_failed(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": exc.reason.value, "message": str(exc)},
    )


def _unknown_resource(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(exc),
    )


@router.post(
    "/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    actor: Optional[str] = Depends(get_actor),
) -> ReservationResponse:
    """Book a resource; 409 carries who already holds the slot."""
    try:
        reservation = service.create_reservation(
            ReservationRequest(
                resource_type=payload.resource_type,
                resource_instance_id=payload.resource_instance_id,
                date=payload.date,
                shift=payload.shift,
                periods=tuple(payload.periods),
                requester=payload.requester,
                group_label=payload.group_label,
                attributes=payload.attributes,
                notes=payload.notes,
            ),
            actor=actor,
        )
        return ReservationResponse.from_domain(reservation)
    except ValidationError as exc:
        raise _validation_failed(exc) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "Conflict",
                "message": str(exc),
                "conflicting_reservation_id": exc.conflicting.id,
                "requester": exc.conflicting.requester,
                "group_label": exc.conflicting.group_label,
                "periods": [period.value for period in exc.conflicting.periods],
                "overlapping_periods": [period.value for period in exc.overlapping_periods],
            },
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create reservation",
        ) from exc


@router.get(
    "/reservations",
    response_model=list[ReservationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_reservations(
    resource_type: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    shift: Optional[str] = None,
    resource_instance_id: Optional[str] = None,
    requester: Optional[str] = Query(default=None, min_length=1),
    service: ReservationService = Depends(get_reservation_service),
) -> list[ReservationResponse]:
    try:
        reservations = service.list_reservations(
            resource_type,
            start_date=start_date,
            end_date=end_date,
            shift=shift,
            resource_instance_id=resource_instance_id,
            requester=requester,
        )
        return [ReservationResponse.from_domain(item) for item in reservations]
    except ValidationError as exc:
        raise _validation_failed(exc) from exc
    except (UnknownResourceTypeError, UnknownResourceError) as exc:
        raise _unknown_resource(exc) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_reservation(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        return ReservationResponse.from_domain(service.get_reservation(reservation_id))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.delete(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_reservation(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service),
    actor: Optional[str] = Depends(get_actor),
) -> ReservationResponse:
    """Cancel; 404 tells the caller the slot was already freed by someone else."""
    try:
        cancelled = service.cancel_reservation(reservation_id, actor=actor)
        return ReservationResponse.from_domain(cancelled)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get(
    "/availability",
    response_model=list[SlotAvailabilityResponse],
    status_code=status.HTTP_200_OK,
)
async def availability(
    resource_type: str,
    date: date,
    service: ReservationService = Depends(get_reservation_service),
) -> list[SlotAvailabilityResponse]:
    try:
        grid = service.availability(resource_type, date)
    except UnknownResourceTypeError as exc:
        raise _unknown_resource(exc) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return [
        SlotAvailabilityResponse(
            resource_instance_id=cell.resource_instance_id,
            shift=cell.shift.value,
            booked=[
                BookedSlotResponse(
                    reservation_id=slot.reservation_id,
                    period=slot.period.value,
                    requester=slot.requester,
                    group_label=slot.group_label,
                )
                for slot in cell.booked
            ],
            free_periods=[period.value for period in cell.free_periods],
        )
        for cell in grid
    ]
