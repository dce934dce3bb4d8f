"""Controller layer for health checks and staff login."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from reservations.controllers.dependencies import get_auth_service
from reservations.services.auth_service import (
    AccessTokenNotConfiguredError,
    AuthService,
    InvalidAccessTokenError,
)
from reservations.utils.config import get_settings


router = APIRouter(tags=["session"])


class LoginRequest(BaseModel):
    access_token: str = Field(min_length=1)
    staff_name: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    staff_name: str


class HealthResponse(BaseModel):
    status: str
    app_name: str
    app_version: str
    auth_enabled: bool


@router.get("/health", response_model=HealthResponse)
async def health(auth_service: AuthService = Depends(get_auth_service)) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        app_name=settings.app_name,
        app_version=settings.app_version,
        auth_enabled=auth_service.auth_enabled,
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        session_token = auth_service.login(payload.access_token, payload.staff_name)
    except AccessTokenNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InvalidAccessTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    return LoginResponse(access_token=session_token, staff_name=payload.staff_name.strip())
