"""Business logic for creating, listing and cancelling resource reservations."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone
from threading import Lock
from typing import Callable, Optional, TypeVar, Union
from uuid import uuid4

from reservations.domain.catalog import ResourceCatalog
from reservations.domain.constraints import validate_date_range, validate_reservation_request
from reservations.domain.errors import NotFoundError, StorageError, ValidationError, ValidationReason
from reservations.domain.models import (
    BookedSlot,
    ClassPeriod,
    EventKind,
    Reservation,
    ReservationEvent,
    ReservationRequest,
    ResourceType,
    Shift,
    SlotAvailability,
)
from reservations.repository.data_repository import DataRepository
from reservations.services.notification_service import ChangeNotificationChannel, PersistedChangeFeed
from reservations.utils.config import Settings, get_settings
from reservations.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class ReservationService:
    """Single reservation engine shared by every resource type in the catalog."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        catalog: Optional[ResourceCatalog] = None,
        channel: Optional[ChangeNotificationChannel] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._catalog = catalog or ResourceCatalog()
        self._channel = channel or ChangeNotificationChannel()
        # Persist and publish under one lock per type so a creation event is
        # always delivered before a later cancellation of the same id.
        self._publish_locks: dict[ResourceType, Lock] = {
            resource_type: Lock() for resource_type in ResourceType
        }

    @property
    def catalog(self) -> ResourceCatalog:
        return self._catalog

    @property
    def channel(self) -> ChangeNotificationChannel:
        return self._channel

    def open_change_feed(self, resource_type: Union[str, ResourceType]) -> PersistedChangeFeed:
        """Feed of changes to one type committed by any engine sharing the database."""
        parsed_type = self._resource_type(resource_type)
        return self._with_storage_retry(
            lambda: PersistedChangeFeed(self._repository, parsed_type),
            "Change feed setup",
        )

    def poll_changes(self, feed: PersistedChangeFeed) -> list[ReservationEvent]:
        return self._with_storage_retry(feed.poll, "Change feed poll")

    def _with_storage_retry(self, operation: Callable[[], T], description: str) -> T:
        attempts = max(1, self._settings.storage_retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except StorageError as exc:
                if attempt == attempts:
                    logger.error("%s failed after %s attempts: %s", description, attempt, exc)
                    raise
                logger.warning(
                    "%s failed (attempt %s/%s), retrying: %s",
                    description,
                    attempt,
                    attempts,
                    exc,
                )
                time.sleep(self._settings.storage_retry_backoff_seconds * attempt)
        raise StorageError(f"{description} failed")  # pragma: no cover

    def _resource_type(self, resource_type: Union[str, ResourceType]) -> ResourceType:
        return self._catalog.definition(resource_type).resource_type

    def create_reservation(
        self,
        request: ReservationRequest,
        actor: Optional[str] = None,
    ) -> Reservation:
        """Validate, atomically check for conflicts and persist a reservation.

        Raises ``ValidationError`` or ``ConflictError`` without side effects.
        """
        validated = validate_reservation_request(request, self._catalog)
        reservation = Reservation(
            id=uuid4().hex,
            resource_type=validated.resource_type,
            resource_instance_id=validated.resource_instance_id,
            date=validated.date,
            shift=validated.shift,
            periods=validated.periods,
            requester=validated.requester,
            group_label=validated.group_label,
            attributes=validated.attributes,
            notes=validated.notes,
            created_at=datetime.now(timezone.utc),
            created_by=actor,
        )

        with self._publish_locks[reservation.resource_type]:
            self._with_storage_retry(
                lambda: self._repository.insert_reservation(reservation),
                "Reservation insert",
            )
            self._channel.publish(
                ReservationEvent(
                    kind=EventKind.CREATED,
                    resource_type=reservation.resource_type,
                    reservation_id=reservation.id,
                    occurred_at=datetime.now(timezone.utc),
                    reservation=reservation,
                )
            )

        logger.info(
            "Reservation %s created: %s/%s %s %s periods=%s by %s",
            reservation.id,
            reservation.resource_type.value,
            reservation.resource_instance_id,
            reservation.date.isoformat(),
            reservation.shift.value,
            ",".join(period.value for period in reservation.periods),
            reservation.requester,
        )
        return reservation

    def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._with_storage_retry(
            lambda: self._repository.get_reservation(reservation_id),
            "Reservation lookup",
        )
        if reservation is None:
            raise NotFoundError(reservation_id)
        return reservation

    def list_reservations(
        self,
        resource_type: Union[str, ResourceType],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        *,
        shift: Optional[Union[str, Shift]] = None,
        resource_instance_id: Optional[str] = None,
        requester: Optional[str] = None,
    ) -> list[Reservation]:
        """Live reservations for a type, ordered by date then creation time."""
        parsed_type = self._resource_type(resource_type)
        validate_date_range(start_date, end_date)
        parsed_shift = None
        if shift is not None:
            try:
                parsed_shift = Shift(str(shift).strip().upper())
            except ValueError as exc:
                raise ValidationError(
                    ValidationReason.INVALID_FIELD,
                    f"Unknown shift {shift!r}",
                ) from exc
        if resource_instance_id is not None:
            self._catalog.resolve_instance(parsed_type, resource_instance_id)

        return self._with_storage_retry(
            lambda: self._repository.list_reservations(
                parsed_type,
                start_date=start_date,
                end_date=end_date,
                shift=parsed_shift,
                resource_instance_id=resource_instance_id,
                requester=requester,
            ),
            "Reservation listing",
        )

    def cancel_reservation(self, reservation_id: str, actor: Optional[str] = None) -> Reservation:
        """Remove a reservation; a second cancel of the same id raises ``NotFoundError``."""
        existing = self.get_reservation(reservation_id)
        with self._publish_locks[existing.resource_type]:
            removed = self._with_storage_retry(
                lambda: self._repository.delete_reservation(reservation_id, actor=actor),
                "Reservation cancellation",
            )
            if removed is None:
                raise NotFoundError(reservation_id)
            self._channel.publish(
                ReservationEvent(
                    kind=EventKind.CANCELLED,
                    resource_type=removed.resource_type,
                    reservation_id=removed.id,
                    occurred_at=datetime.now(timezone.utc),
                )
            )
        logger.info(
            "Reservation %s cancelled (%s/%s %s)",
            removed.id,
            removed.resource_type.value,
            removed.resource_instance_id,
            removed.date.isoformat(),
        )
        return removed

    def availability(
        self,
        resource_type: Union[str, ResourceType],
        target_date: date,
    ) -> list[SlotAvailability]:
        """Booked and free periods for every instance and shift on one day."""
        definition = self._catalog.definition(resource_type)
        reservations = self.list_reservations(
            definition.resource_type,
            start_date=target_date,
            end_date=target_date,
        )

        grid: list[SlotAvailability] = []
        for instance_id in definition.instances:
            for shift in Shift:
                booked = [
                    BookedSlot(
                        reservation_id=reservation.id,
                        period=period,
                        requester=reservation.requester,
                        group_label=reservation.group_label,
                    )
                    for reservation in reservations
                    if reservation.resource_instance_id == instance_id
                    and reservation.shift == shift
                    for period in reservation.periods
                ]
                booked.sort(key=lambda slot: slot.period.ordinal)
                taken = {slot.period for slot in booked}
                grid.append(
                    SlotAvailability(
                        resource_instance_id=instance_id,
                        shift=shift,
                        booked=tuple(booked),
                        free_periods=tuple(period for period in ClassPeriod if period not in taken),
                    )
                )
        return grid
