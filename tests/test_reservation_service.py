from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from reservations.domain.errors import (
    ConflictError,
    NotFoundError,
    UnknownResourceTypeError,
    ValidationError,
    ValidationReason,
)
from reservations.domain.models import ClassPeriod, EventKind, ReservationRequest, Shift
from reservations.repository.data_repository import DataRepository
from reservations.services.notification_service import ChangeNotificationChannel
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import get_settings


LAB_DAY = date(2026, 3, 9)


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        storage_retry_backoff_seconds=0.0,
    )


def _build_service(tmp_path, filename: str = "reservations.db"):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    channel = ChangeNotificationChannel()
    service = ReservationService(repository=repository, channel=channel, settings=settings)
    return service, repository, channel


def _request(**overrides) -> ReservationRequest:
    base = ReservationRequest(
        resource_type="SCIENCE_LAB",
        date=LAB_DAY,
        shift="MORNING",
        periods=("1st", "2nd"),
        requester="T. Silva",
        group_label="8A",
        attributes={"subject": "Science", "experiment_name": "Density", "needs_technician": True},
        notes="goggles",
    )
    return replace(base, **overrides)


def test_science_lab_scenario(tmp_path):
    service, _, _ = _build_service(tmp_path)

    first = service.create_reservation(_request())
    assert first.id

    second_request = _request(periods=("2nd", "3rd"), requester="T. Alves", group_label="9B")
    with pytest.raises(ConflictError) as excinfo:
        service.create_reservation(second_request)
    assert excinfo.value.conflicting.requester == "T. Silva"
    assert excinfo.value.conflicting.id == first.id
    assert excinfo.value.overlapping_periods == (ClassPeriod.SECOND,)

    service.cancel_reservation(first.id)
    retried = service.create_reservation(second_request)
    assert retried.requester == "T. Alves"
    assert retried.periods == (ClassPeriod.SECOND, ClassPeriod.THIRD)


def test_round_trip_preserves_request_fields(tmp_path):
    service, _, _ = _build_service(tmp_path)
    request = _request(
        resource_type="MAKER_LAB",
        requester="  T. Silva ",
        group_label=" 8A\n",
        attributes={
            "subject": "Technology",
            "project_name": "Line follower",
            "equipment_used": ["Robotics Kits", "Hand Tools"],
            "nested": {"batch": 2, "notes": None},
        },
    )
    created = service.create_reservation(request, actor="coordinator")

    listed = service.list_reservations("MAKER_LAB")
    assert listed == [created]
    fetched = listed[0]
    assert fetched.resource_instance_id == "MAKER_LAB"
    assert fetched.date == request.date
    assert fetched.shift is Shift.MORNING
    assert [period.value for period in fetched.periods] == list(request.periods)
    assert fetched.requester == request.requester
    assert fetched.group_label == request.group_label
    assert fetched.attributes == request.attributes
    assert fetched.notes == request.notes
    assert fetched.created_by == "coordinator"


def test_stations_do_not_interfere(tmp_path):
    service, _, _ = _build_service(tmp_path)
    base = _request(resource_type="STATION_POOL", periods=("1st",), attributes={"subject": "Math"})

    service.create_reservation(replace(base, resource_instance_id="Station 1"))
    other = service.create_reservation(replace(base, resource_instance_id="Station 2"))

    assert other.resource_instance_id == "Station 2"
    with pytest.raises(ConflictError):
        service.create_reservation(replace(base, resource_instance_id="Station 1", requester="Other"))


def test_disjoint_periods_do_not_conflict(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.create_reservation(_request(periods=("1st", "2nd")))
    later = service.create_reservation(_request(periods=("3rd", "4th"), requester="T. Alves"))
    assert later.periods == (ClassPeriod.THIRD, ClassPeriod.FOURTH)

    with pytest.raises(ConflictError) as excinfo:
        service.create_reservation(_request(periods=("2nd", "3rd"), requester="R. Costa"))
    # The earliest colliding reservation is reported.
    assert excinfo.value.conflicting.requester == "T. Silva"
    assert excinfo.value.overlapping_periods == (ClassPeriod.SECOND,)


def test_other_shift_date_and_type_do_not_conflict(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.create_reservation(_request())
    service.create_reservation(_request(shift="AFTERNOON"))
    service.create_reservation(_request(date=date(2026, 3, 10)))
    service.create_reservation(_request(resource_type="KITCHEN", attributes={}))

    assert len(service.list_reservations("SCIENCE_LAB")) == 3
    assert len(service.list_reservations("KITCHEN")) == 1


def test_failed_create_has_no_side_effects(tmp_path):
    service, repository, channel = _build_service(tmp_path)
    service.create_reservation(_request())

    with channel.subscribe(service.catalog.definition("SCIENCE_LAB").resource_type) as subscription:
        with pytest.raises(ValidationError):
            service.create_reservation(_request(periods=()))
        with pytest.raises(ConflictError):
            service.create_reservation(_request(requester="Someone else"))
        with pytest.raises(ValidationError):
            service.create_reservation(_request(date=LAB_DAY.replace(day=10), attributes={1: ("x",)}))
        assert subscription.drain() == []

    assert repository.count_reservations() == 1
    assert repository.count_slots() == 2


def test_validation_errors_surface_reason(tmp_path):
    service, _, _ = _build_service(tmp_path)
    with pytest.raises(ValidationError) as excinfo:
        service.create_reservation(_request(resource_type="POOL"))
    assert excinfo.value.reason is ValidationReason.UNKNOWN_RESOURCE

    with pytest.raises(ValidationError) as excinfo:
        service.create_reservation(_request(requester=""))
    assert excinfo.value.reason is ValidationReason.MISSING_REQUIRED_FIELD


def test_cancel_twice_yields_one_success_and_one_not_found(tmp_path):
    service, repository, _ = _build_service(tmp_path)
    created = service.create_reservation(_request())

    cancelled = service.cancel_reservation(created.id, actor="secretary")
    assert cancelled.id == created.id
    with pytest.raises(NotFoundError):
        service.cancel_reservation(created.id)
    with pytest.raises(NotFoundError):
        service.cancel_reservation("does-not-exist")

    assert service.list_reservations("SCIENCE_LAB") == []
    assert repository.count_slots() == 0
    assert repository.list_audit_entries(created.id) == [
        ("CREATED", None),
        ("CANCELLED", "secretary"),
    ]


def test_get_reservation(tmp_path):
    service, _, _ = _build_service(tmp_path)
    created = service.create_reservation(_request())
    assert service.get_reservation(created.id) == created
    with pytest.raises(NotFoundError):
        service.get_reservation("missing")


def test_list_orders_by_date_then_creation(tmp_path):
    service, _, _ = _build_service(tmp_path)
    late = service.create_reservation(_request(date=date(2026, 3, 12)))
    early_second = service.create_reservation(_request(date=date(2026, 3, 10), periods=("4th",)))
    early_first = service.create_reservation(_request(date=date(2026, 3, 10), periods=("1st",), shift="AFTERNOON"))

    listed = service.list_reservations("SCIENCE_LAB")
    assert [item.id for item in listed] == [early_second.id, early_first.id, late.id]


def test_list_filters(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.create_reservation(_request(date=date(2026, 3, 9)))
    afternoon = service.create_reservation(_request(date=date(2026, 3, 10), shift="AFTERNOON", requester="M. Souza"))
    service.create_reservation(_request(date=date(2026, 3, 11)))

    in_range = service.list_reservations("SCIENCE_LAB", date(2026, 3, 10), date(2026, 3, 11))
    assert len(in_range) == 2
    assert service.list_reservations("SCIENCE_LAB", shift="afternoon") == [afternoon]
    assert service.list_reservations("SCIENCE_LAB", requester="souza") == [afternoon]
    assert service.list_reservations("SCIENCE_LAB", requester="%") == []
    assert service.list_reservations("SCIENCE_LAB", requester="_") == []
    assert service.list_reservations("SCIENCE_LAB", requester="M. S") == [afternoon]

    with pytest.raises(ValidationError):
        service.list_reservations("SCIENCE_LAB", date(2026, 3, 11), date(2026, 3, 10))
    with pytest.raises(UnknownResourceTypeError):
        service.list_reservations("GARDEN")


def test_past_reservations_remain_listed(tmp_path):
    service, _, _ = _build_service(tmp_path)
    old = service.create_reservation(_request(date=date(2019, 5, 6)))
    assert service.list_reservations("SCIENCE_LAB") == [old]


def test_availability_grid(tmp_path):
    service, _, _ = _build_service(tmp_path)
    service.create_reservation(
        _request(
            resource_type="STATION_POOL",
            resource_instance_id="Station 3",
            periods=("2nd", "5th"),
            attributes={},
        )
    )

    grid = service.availability("STATION_POOL", LAB_DAY)
    assert len(grid) == 8
    cell = next(
        item for item in grid
        if item.resource_instance_id == "Station 3" and item.shift is Shift.MORNING
    )
    assert [slot.period for slot in cell.booked] == [ClassPeriod.SECOND, ClassPeriod.FIFTH]
    assert cell.booked[0].requester == "T. Silva"
    assert cell.free_periods == (ClassPeriod.FIRST, ClassPeriod.THIRD, ClassPeriod.FOURTH)

    untouched = [item for item in grid if item is not cell]
    assert all(len(item.free_periods) == 5 for item in untouched)


def test_events_published_for_create_and_cancel(tmp_path):
    service, _, channel = _build_service(tmp_path)
    lab = service.catalog.definition("SCIENCE_LAB").resource_type

    with channel.subscribe(lab) as subscription:
        created = service.create_reservation(_request())
        service.cancel_reservation(created.id)
        events = subscription.drain()

    assert [event.kind for event in events] == [EventKind.CREATED, EventKind.CANCELLED]
    assert events[0].reservation == created
    assert events[1].reservation_id == created.id
    assert events[1].reservation is None


def test_created_record_and_event_match_the_stored_row(tmp_path):
    service, _, channel = _build_service(tmp_path)
    lab = service.catalog.definition("MAKER_LAB").resource_type
    request = _request(
        resource_type="MAKER_LAB",
        attributes={"equipment_used": ["3D Printer"], "batch": {"size": 3, "ratio": 0.5}},
    )

    with channel.subscribe(lab) as subscription:
        created = service.create_reservation(request)
        events = subscription.drain()

    stored = service.get_reservation(created.id)
    assert stored == created
    assert events[0].reservation == stored
