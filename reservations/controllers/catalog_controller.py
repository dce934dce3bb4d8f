"""Controller layer exposing the resource catalog and its change feeds."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from reservations.controllers.dependencies import get_reservation_service
from reservations.domain.catalog import ResourceDefinition
from reservations.domain.errors import StorageError, UnknownResourceTypeError
from reservations.domain.models import ReservationEvent
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import get_settings
from reservations.utils.logger import get_logger


logger = get_logger(__name__)


router = APIRouter(tags=["catalog"])


class AttributeFieldResponse(BaseModel):
    name: str
    label: str
    kind: str
    choices: list[str]


class ResourceDefinitionResponse(BaseModel):
    resource_type: str
    display_name: str
    instances: list[str]
    attributes: list[AttributeFieldResponse]

    @classmethod
    def from_domain(cls, definition: ResourceDefinition) -> "ResourceDefinitionResponse":
        return cls(**definition.to_dict())


def format_sse(event: ReservationEvent) -> str:
    """Render one event in Server-Sent Events wire format."""
    payload = json.dumps(event.to_dict(), separators=(",", ":"))
    return f"event: {event.kind.value}\ndata: {payload}\n\n"


@router.get("/resources", response_model=list[ResourceDefinitionResponse])
async def list_resources(
    service: ReservationService = Depends(get_reservation_service),
) -> list[ResourceDefinitionResponse]:
    return [
        ResourceDefinitionResponse.from_domain(definition)
        for definition in service.catalog.definitions()
    ]


@router.get("/resources/{resource_type}", response_model=ResourceDefinitionResponse)
async def describe_resource(
    resource_type: str,
    service: ReservationService = Depends(get_reservation_service),
) -> ResourceDefinitionResponse:
    try:
        return ResourceDefinitionResponse.from_domain(service.catalog.definition(resource_type))
    except UnknownResourceTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/events/{resource_type}")
async def stream_events(
    resource_type: str,
    request: Request,
    service: ReservationService = Depends(get_reservation_service),
) -> StreamingResponse:
    """Push CREATED/CANCELLED hints so open calendars know to re-fetch.

    Reads the shared audit log, so bookings made by other processes on the
    same database reach this stream too.
    """
    try:
        feed = service.open_change_feed(resource_type)
    except UnknownResourceTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    poll_seconds = get_settings().event_stream_poll_seconds

    async def event_source():
        yield f": subscribed to {feed.resource_type.value}\n\n"
        while not await request.is_disconnected():
            try:
                events = await run_in_threadpool(service.poll_changes, feed)
            except StorageError as exc:
                # EventSource clients reconnect on their own after the stream ends.
                logger.error("Change feed for %s stopped: %s", feed.resource_type.value, exc)
                return
            for event in events:
                yield format_sse(event)
            if not events:
                await asyncio.sleep(poll_seconds)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
