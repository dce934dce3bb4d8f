from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone

from reservations.controllers.catalog_controller import format_sse
from reservations.domain.models import EventKind, ReservationEvent, ReservationRequest, ResourceType
from reservations.repository.data_repository import DataRepository
from reservations.services.notification_service import ChangeNotificationChannel
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import get_settings


def _event(kind: EventKind, resource_type: ResourceType, reservation_id: str) -> ReservationEvent:
    return ReservationEvent(
        kind=kind,
        resource_type=resource_type,
        reservation_id=reservation_id,
        occurred_at=datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc),
    )


def test_events_reach_only_subscribers_of_that_type():
    channel = ChangeNotificationChannel()
    kitchen = channel.subscribe(ResourceType.KITCHEN)
    library = channel.subscribe(ResourceType.LIBRARY_ROOM)

    delivered = channel.publish(_event(EventKind.CREATED, ResourceType.KITCHEN, "abc"))

    assert delivered == 1
    assert kitchen.get(timeout=0.1).reservation_id == "abc"
    assert library.get(timeout=0.01) is None


def test_every_subscriber_receives_events_in_publish_order():
    channel = ChangeNotificationChannel()
    first = channel.subscribe(ResourceType.AUDITORIUM)
    second = channel.subscribe(ResourceType.AUDITORIUM)

    channel.publish(_event(EventKind.CREATED, ResourceType.AUDITORIUM, "r1"))
    channel.publish(_event(EventKind.CANCELLED, ResourceType.AUDITORIUM, "r1"))

    for subscription in (first, second):
        kinds = [event.kind for event in subscription.drain()]
        assert kinds == [EventKind.CREATED, EventKind.CANCELLED]


def test_unsubscribe_stops_delivery_and_is_idempotent():
    channel = ChangeNotificationChannel()
    subscription = channel.subscribe(ResourceType.MAKER_LAB)
    assert channel.subscriber_count(ResourceType.MAKER_LAB) == 1

    channel.unsubscribe(subscription)
    channel.unsubscribe(subscription)

    assert subscription.closed
    assert channel.subscriber_count(ResourceType.MAKER_LAB) == 0
    assert channel.publish(_event(EventKind.CREATED, ResourceType.MAKER_LAB, "x")) == 0
    assert subscription.drain() == []


def test_context_manager_releases_subscription():
    channel = ChangeNotificationChannel()
    with channel.subscribe(ResourceType.SCIENCE_LAB):
        assert channel.subscriber_count(ResourceType.SCIENCE_LAB) == 1
    assert channel.subscriber_count(ResourceType.SCIENCE_LAB) == 0


def test_sse_format():
    payload = format_sse(_event(EventKind.CANCELLED, ResourceType.KITCHEN, "r9"))
    assert payload.startswith("event: CANCELLED\ndata: {")
    assert '"reservation_id":"r9"' in payload
    assert '"reservation":null' in payload
    assert payload.endswith("\n\n")


def _build_engine(tmp_path):
    settings = replace(
        get_settings(),
        database_path=tmp_path / "shared.db",
        storage_retry_backoff_seconds=0.0,
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    return ReservationService(repository=repository, settings=settings)


def _kitchen_request() -> ReservationRequest:
    return ReservationRequest(
        resource_type="KITCHEN",
        date=date(2026, 3, 9),
        shift="AFTERNOON",
        periods=("3rd",),
        requester="L. Prado",
        group_label="6C",
        attributes={"project_name": "Bread"},
    )


def test_change_feed_sees_bookings_made_by_another_engine(tmp_path):
    watcher = _build_engine(tmp_path)
    writer = _build_engine(tmp_path)
    kitchen_feed = watcher.open_change_feed("KITCHEN")
    library_feed = watcher.open_change_feed("LIBRARY_ROOM")

    created = writer.create_reservation(_kitchen_request())
    first_batch = watcher.poll_changes(kitchen_feed)
    writer.cancel_reservation(created.id)
    second_batch = watcher.poll_changes(kitchen_feed)

    assert [event.kind for event in first_batch] == [EventKind.CREATED]
    assert first_batch[0].reservation == created
    assert [(event.kind, event.reservation_id) for event in second_batch] == [
        (EventKind.CANCELLED, created.id),
    ]
    assert second_batch[0].reservation is None
    assert watcher.poll_changes(kitchen_feed) == []
    assert watcher.poll_changes(library_feed) == []


def test_change_feed_skips_changes_before_it_was_opened(tmp_path):
    engine = _build_engine(tmp_path)
    earlier = engine.create_reservation(_kitchen_request())

    feed = engine.open_change_feed("KITCHEN")
    engine.cancel_reservation(earlier.id)

    events = engine.poll_changes(feed)
    assert [event.kind for event in events] == [EventKind.CANCELLED]
