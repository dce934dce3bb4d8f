"""Error taxonomy shared by the catalog, repository and reservation service."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from reservations.domain.models import ClassPeriod, Reservation


class ReservationError(Exception):
    """Base exception for reservation workflow failures."""


class ValidationReason(str, Enum):
    UNKNOWN_RESOURCE = "UnknownResource"
    NO_PERIODS_SELECTED = "NoPeriodsSelected"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    INVALID_FIELD = "InvalidField"
    INVALID_DATE_RANGE = "InvalidDateRange"


class ValidationError(ReservationError):
    """Raised when a request is malformed or incomplete."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class UnknownResourceTypeError(ReservationError):
    """Raised when a resource type tag is not in the catalog."""

    def __init__(self, resource_type: object) -> None:
        super().__init__(f"Unknown resource type: {resource_type!r}")
        self.resource_type = resource_type


class UnknownResourceError(ReservationError):
    """Raised when an instance id does not belong to its resource type."""

    def __init__(self, resource_type: object, resource_instance_id: object) -> None:
        super().__init__(
            f"Resource instance {resource_instance_id!r} does not exist "
            f"for resource type {resource_type!r}"
        )
        self.resource_type = resource_type
        self.resource_instance_id = resource_instance_id


class ConflictError(ReservationError):
    """Raised when the requested slot is already taken."""

    def __init__(
        self,
        conflicting: "Reservation",
        overlapping_periods: Sequence["ClassPeriod"],
    ) -> None:
        self.conflicting = conflicting
        self.overlapping_periods = tuple(overlapping_periods)
        labels = ", ".join(period.value for period in self.overlapping_periods)
        super().__init__(
            f"{conflicting.resource_instance_id} is already reserved by "
            f"{conflicting.requester} ({conflicting.group_label}) on "
            f"{conflicting.date.isoformat()} {conflicting.shift.value} "
            f"for periods {labels}"
        )


class NotFoundError(ReservationError):
    """Raised when a reservation id does not exist (or was already cancelled)."""

    def __init__(self, reservation_id: str) -> None:
        super().__init__(f"Reservation {reservation_id!r} not found")
        self.reservation_id = reservation_id


class StorageError(ReservationError):
    """Raised when the underlying database is unavailable or failing."""
