"""Director token authentication issuing short-lived bearer sessions."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Optional

from odin.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class DirectorTokenNotConfiguredError(AuthenticationError):
    """Raised when ODIN_DIRECTOR_TOKEN is missing."""


class InvalidDirectorTokenError(AuthenticationError):
    """Raised when a provided token or session is invalid."""


class AuthService:
    """Validates director logins and the bearer sessions they open."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._sessions: dict[str, datetime] = {}
        self._lock = RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.director_token)

    def _expected_token(self) -> str:
        if not self._settings.director_token:
            raise DirectorTokenNotConfiguredError(
                "ODIN_DIRECTOR_TOKEN is not configured. Set it in environment variables."
            )
        return self._settings.director_token

    def login(self, provided_token: str, now: Optional[datetime] = None) -> tuple[str, datetime]:
        expected = self._expected_token()
        if not secrets.compare_digest(provided_token, expected):
            raise InvalidDirectorTokenError("Invalid director token")
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(minutes=self._settings.session_ttl_minutes)
        session_token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired(issued_at)
            self._sessions[session_token] = expires_at
        return session_token, expires_at

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def validate_bearer_token(self, bearer_token: str, now: Optional[datetime] = None) -> None:
        if not self.auth_enabled:
            return
        moment = now or datetime.now(timezone.utc)
        with self._lock:
            expires_at = self._sessions.get(bearer_token)
            if expires_at is None:
                raise InvalidDirectorTokenError("Invalid bearer token. Login first.")
            if expires_at <= moment:
                del self._sessions[bearer_token]
                raise InvalidDirectorTokenError("Session expired. Login again.")

    def _purge_expired(self, moment: datetime) -> None:
        expired = [token for token, expires_at in self._sessions.items() if expires_at <= moment]
        for token in expired:
            del self._sessions[token]
