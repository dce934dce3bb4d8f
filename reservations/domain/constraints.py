"""Domain-level validation rules for reservation requests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from reservations.domain.catalog import ResourceCatalog
from reservations.domain.errors import (
    UnknownResourceError,
    UnknownResourceTypeError,
    ValidationError,
    ValidationReason,
)
from reservations.domain.models import (
    ClassPeriod,
    ReservationRequest,
    ResourceType,
    Shift,
    sort_periods,
)


@dataclass(frozen=True)
class ValidatedRequest:
    resource_type: ResourceType
    resource_instance_id: str
    date: date
    shift: Shift
    periods: tuple[ClassPeriod, ...]
    requester: str
    group_label: str
    attributes: dict[str, Any]
    notes: str


def overlapping_periods(
    first: Iterable[ClassPeriod],
    second: Iterable[ClassPeriod],
) -> tuple[ClassPeriod, ...]:
    """Periods claimed by both sets; empty means no conflict."""
    return sort_periods(set(first) & set(second))


def validate_reservation_request(
    request: ReservationRequest,
    catalog: ResourceCatalog,
) -> ValidatedRequest:
    """Check a request in a fixed order and return its typed form.

    Order: resource, periods present, required names, then field formats.
    The first failing rule is reported.
    """
    try:
        resource_type = catalog.parse_type(request.resource_type)
        instance_id = catalog.resolve_instance(resource_type, request.resource_instance_id)
    except (UnknownResourceTypeError, UnknownResourceError) as exc:
        raise ValidationError(ValidationReason.UNKNOWN_RESOURCE, str(exc)) from exc

    if not request.periods:
        raise ValidationError(
            ValidationReason.NO_PERIODS_SELECTED,
            "Select at least one class period",
        )

    if not (request.requester or "").strip() or not (request.group_label or "").strip():
        raise ValidationError(
            ValidationReason.MISSING_REQUIRED_FIELD,
            "requester and group_label are required",
        )

    periods = _parse_periods(request.periods)
    shift = _parse_shift(request.shift)
    if not isinstance(request.date, date):
        raise ValidationError(ValidationReason.INVALID_FIELD, "date must be a calendar date")
    attributes = _parse_attributes(request.attributes)

    return ValidatedRequest(
        resource_type=resource_type,
        resource_instance_id=instance_id,
        date=request.date,
        shift=shift,
        periods=periods,
        requester=request.requester,
        group_label=request.group_label,
        attributes=attributes,
        notes=request.notes or "",
    )


def validate_date_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError(
            ValidationReason.INVALID_DATE_RANGE,
            "start_date must be on or before end_date",
        )


def _parse_periods(labels: Iterable[str]) -> tuple[ClassPeriod, ...]:
    parsed = []
    for label in labels:
        try:
            parsed.append(ClassPeriod(str(label).strip()))
        except ValueError as exc:
            valid = ", ".join(period.value for period in ClassPeriod)
            raise ValidationError(
                ValidationReason.INVALID_FIELD,
                f"Unknown class period {label!r}; expected one of {valid}",
            ) from exc
    return sort_periods(parsed)


def _parse_shift(value: str) -> Shift:
    try:
        return Shift(str(value).strip().upper())
    except ValueError as exc:
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"Unknown shift {value!r}; expected MORNING or AFTERNOON",
        ) from exc


def _parse_attributes(value: Any) -> dict[str, Any]:
    # Stored as JSON: accept only bags that come back from a JSON round trip unchanged.
    if not isinstance(value, dict):
        raise ValidationError(ValidationReason.INVALID_FIELD, "attributes must be an object")
    try:
        restored = json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            "attributes must be JSON-serializable",
        ) from exc
    if restored != value:
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            "attributes must use string keys and plain JSON values",
        )
    return restored
