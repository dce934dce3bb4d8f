"""Reservation change feeds per resource type.

``ChangeNotificationChannel`` fans events out to subscribers inside this
process. ``PersistedChangeFeed`` reads the shared audit log instead, so it also
sees changes committed by other processes using the same database file.
"""

from __future__ import annotations

import queue
from threading import RLock
from typing import Optional

from reservations.domain.models import ReservationEvent, ResourceType
from reservations.repository.data_repository import DataRepository
from reservations.utils.logger import get_logger


logger = get_logger(__name__)


class Subscription:
    """One subscriber's event stream for a single resource type.

    Events are hints: on receipt, clients re-fetch reservations from the
    service rather than patching local state from the payload.
    """

    def __init__(self, channel: "ChangeNotificationChannel", resource_type: ResourceType) -> None:
        self._channel = channel
        self.resource_type = resource_type
        self._queue: "queue.Queue[ReservationEvent]" = queue.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: ReservationEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ReservationEvent]:
        """Return the next event, or ``None`` if none arrives within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[ReservationEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ChangeNotificationChannel:
    """Fans out creation/cancellation events to subscribers of one resource type."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._subscribers: dict[ResourceType, list[Subscription]] = {}

    def subscribe(self, resource_type: ResourceType) -> Subscription:
        subscription = Subscription(self, resource_type)
        with self._lock:
            self._subscribers.setdefault(resource_type, []).append(subscription)
        logger.debug("Subscriber added for %s", resource_type.value)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.resource_type, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
                logger.debug("Subscriber removed for %s", subscription.resource_type.value)
            subscription._closed = True

    def subscriber_count(self, resource_type: ResourceType) -> int:
        with self._lock:
            return len(self._subscribers.get(resource_type, []))

    def publish(self, event: ReservationEvent) -> int:
        """Deliver ``event`` to current subscribers; returns how many received it."""
        with self._lock:
            targets = list(self._subscribers.get(event.resource_type, []))
            for subscription in targets:
                subscription._deliver(event)
        logger.debug(
            "Published %s for reservation %s to %s subscribers",
            event.kind.value,
            event.reservation_id,
            len(targets),
        )
        return len(targets)


class PersistedChangeFeed:
    """Cursor over ``ReservationAuditLog`` for one resource type.

    Starts at the current end of the log, so only changes committed after the
    feed was opened are returned.
    """

    def __init__(
        self,
        repository: DataRepository,
        resource_type: ResourceType,
        batch_size: int = 100,
    ) -> None:
        self._repository = repository
        self.resource_type = resource_type
        self._batch_size = batch_size
        self._last_id = repository.latest_audit_id()

    def poll(self) -> list[ReservationEvent]:
        """Return changes committed since the previous poll, oldest first."""
        rows = self._repository.list_events_after(
            self.resource_type,
            self._last_id,
            limit=self._batch_size,
        )
        if rows:
            self._last_id = rows[-1][0]
            logger.debug(
                "Change feed for %s advanced to audit id %s",
                self.resource_type.value,
                self._last_id,
            )
        return [event for _, event in rows]
