from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from odin.services.auth_service import (
    AuthService,
    DirectorTokenNotConfiguredError,
    InvalidDirectorTokenError,
)
from odin.utils.config import get_settings


NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _build_auth(director_token=None, ttl_minutes: int = 30) -> AuthService:
    get_settings.cache_clear()
    return AuthService(
        replace(get_settings(), director_token=director_token, session_ttl_minutes=ttl_minutes)
    )


def test_auth_is_open_without_a_director_token() -> None:
    auth = _build_auth()

    assert not auth.auth_enabled
    auth.validate_bearer_token("anything")
    with pytest.raises(DirectorTokenNotConfiguredError):
        auth.login("anything")


def test_login_rejects_a_wrong_token() -> None:
    auth = _build_auth("diretoria-secreta")

    with pytest.raises(InvalidDirectorTokenError):
        auth.login("palpite", now=NOW)


def test_sessions_expire_after_the_ttl() -> None:
    auth = _build_auth("diretoria-secreta", ttl_minutes=30)
    token, expires_at = auth.login("diretoria-secreta", now=NOW)

    assert expires_at == NOW + timedelta(minutes=30)
    auth.validate_bearer_token(token, now=NOW + timedelta(minutes=29))
    with pytest.raises(InvalidDirectorTokenError):
        auth.validate_bearer_token(token, now=NOW + timedelta(minutes=30))
    with pytest.raises(InvalidDirectorTokenError):
        auth.validate_bearer_token(token, now=NOW)


def test_several_directors_can_hold_sessions_and_log_out_independently() -> None:
    auth = _build_auth("diretoria-secreta")
    first, _ = auth.login("diretoria-secreta", now=NOW)
    second, _ = auth.login("diretoria-secreta", now=NOW)

    auth.logout(first)

    assert first != second
    auth.validate_bearer_token(second, now=NOW)
    with pytest.raises(InvalidDirectorTokenError):
        auth.validate_bearer_token(first, now=NOW)
