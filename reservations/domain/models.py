"""Domain models for shared-resource reservations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional


class ResourceType(str, Enum):
    STATION_POOL = "STATION_POOL"
    SCIENCE_LAB = "SCIENCE_LAB"
    MAKER_LAB = "MAKER_LAB"
    KITCHEN = "KITCHEN"
    LIBRARY_ROOM = "LIBRARY_ROOM"
    AUDITORIUM = "AUDITORIUM"


class Shift(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


class ClassPeriod(str, Enum):
    FIRST = "1st"
    SECOND = "2nd"
    THIRD = "3rd"
    FOURTH = "4th"
    FIFTH = "5th"

    @property
    def ordinal(self) -> int:
        return _PERIOD_ORDER[self]


_PERIOD_ORDER = {period: index for index, period in enumerate(ClassPeriod)}


def sort_periods(periods: Iterable[ClassPeriod]) -> tuple[ClassPeriod, ...]:
    """Deduplicate and return periods in school-day order."""
    return tuple(sorted(set(periods), key=lambda period: period.ordinal))


class EventKind(str, Enum):
    CREATED = "CREATED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ReservationRequest:
    """Caller input for a new reservation, before validation.

    ``resource_type``, ``shift`` and ``periods`` are kept as raw strings so
    that validation can report problems in a fixed order.
    """

    resource_type: str
    date: date
    shift: str
    periods: tuple[str, ...]
    requester: str
    group_label: str
    resource_instance_id: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    notes: str = ""


@dataclass(frozen=True)
class Reservation:
    id: str
    resource_type: ResourceType
    resource_instance_id: str
    date: date
    shift: Shift
    periods: tuple[ClassPeriod, ...]
    requester: str
    group_label: str
    attributes: dict[str, Any]
    notes: str
    created_at: datetime
    created_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource_type": self.resource_type.value,
            "resource_instance_id": self.resource_instance_id,
            "date": self.date.isoformat(),
            "shift": self.shift.value,
            "periods": [period.value for period in self.periods],
            "requester": self.requester,
            "group_label": self.group_label,
            "attributes": self.attributes,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class ReservationEvent:
    kind: EventKind
    resource_type: ResourceType
    reservation_id: str
    occurred_at: datetime
    reservation: Optional[Reservation] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "resource_type": self.resource_type.value,
            "reservation_id": self.reservation_id,
            "occurred_at": self.occurred_at.isoformat(),
            "reservation": self.reservation.to_dict() if self.reservation else None,
        }


@dataclass(frozen=True)
class BookedSlot:
    reservation_id: str
    period: ClassPeriod
    requester: str
    group_label: str


@dataclass(frozen=True)
class SlotAvailability:
    """Occupancy of one instance for one shift on one day."""

    resource_instance_id: str
    shift: Shift
    booked: tuple[BookedSlot, ...]
    free_periods: tuple[ClassPeriod, ...]
