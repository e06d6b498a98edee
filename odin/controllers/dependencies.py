"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from odin.services.auth_service import (
    AuthService,
    DirectorTokenNotConfiguredError,
    InvalidDirectorTokenError,
)
from odin.services.member_service import MemberService
from odin.services.period_service import PeriodService
from odin.services.points_service import PointsService
from odin.services.reservation_service import ReservationService
from odin.services.template_import_service import TemplateImportService
from odin.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def _service_from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


def get_reservation_service(request: Request) -> ReservationService:
    return _service_from_state(request, "reservation_service", "Reservation")


def get_points_service(request: Request) -> PointsService:
    return _service_from_state(request, "points_service", "Points")


def get_period_service(request: Request) -> PeriodService:
    return _service_from_state(request, "period_service", "Period")


def get_member_service(request: Request) -> MemberService:
    return _service_from_state(request, "member_service", "Member")


def get_template_import_service(request: Request) -> TemplateImportService:
    return _service_from_state(request, "template_import_service", "Template import")


async def require_director(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except (DirectorTokenNotConfiguredError, InvalidDirectorTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


async def is_director(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> bool:
    """True for a valid director session; members simply omit the header."""
    if not auth_service.auth_enabled:
        return True
    if credentials is None:
        return False
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except InvalidDirectorTokenError:
        return False
    return True
