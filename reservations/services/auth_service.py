"""Shared access token login that binds a staff name to a bearer session."""

from __future__ import annotations

import secrets
from threading import RLock
from typing import Optional

from reservations.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class AccessTokenNotConfiguredError(AuthenticationError):
    """Raised when RESERVATIONS_ACCESS_TOKEN is missing."""


class InvalidAccessTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


class AuthService:
    """Resolves which staff member is calling, for the audit trail only."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._sessions: dict[str, str] = {}
        self._lock = RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.access_token)

    def _expected_token(self) -> str:
        if not self._settings.access_token:
            raise AccessTokenNotConfiguredError(
                "RESERVATIONS_ACCESS_TOKEN is not configured. Set it in environment variables."
            )
        return self._settings.access_token

    def login(self, provided_access_token: str, staff_name: str) -> str:
        expected = self._expected_token()
        if not secrets.compare_digest(provided_access_token, expected):
            raise InvalidAccessTokenError("Invalid access token")
        session_token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[session_token] = staff_name.strip()
        return session_token

    def resolve_actor(self, bearer_token: str) -> str:
        """Return the staff name bound to ``bearer_token``."""
        with self._lock:
            for session_token, staff_name in self._sessions.items():
                if secrets.compare_digest(bearer_token, session_token):
                    return staff_name
        raise InvalidAccessTokenError("Invalid bearer token. Login first.")
