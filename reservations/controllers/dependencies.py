"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from reservations.services.auth_service import (
    AccessTokenNotConfiguredError,
    AuthService,
    InvalidAccessTokenError,
)
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


def get_reservation_service(request: Request) -> ReservationService:
    service = getattr(request.app.state, "reservation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reservation service is not initialized",
        )
    return service


async def get_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    staff_name: Optional[str] = Header(default=None, alias="X-Staff-Name"),
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[str]:
    """Identify the caller for the audit log.

    With an access token configured a bearer session is required; otherwise
    the optional ``X-Staff-Name`` header is trusted as-is.
    """
    if not auth_service.auth_enabled:
        return staff_name.strip() if staff_name and staff_name.strip() else None
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        return auth_service.resolve_actor(credentials.credentials)
    except (AccessTokenNotConfiguredError, InvalidAccessTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
