"""Controller layer for director login, members, scoring periods and semesters."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from odin.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_member_service,
    get_period_service,
    require_director,
)
from odin.domain.models import Member, MemberStatus, ScoringPeriod, Semester
from odin.services.auth_service import (
    AuthService,
    DirectorTokenNotConfiguredError,
    InvalidDirectorTokenError,
)
from odin.services.member_service import (
    MemberNotFoundError,
    MemberService,
    MemberValidationError,
)
from odin.services.period_service import (
    NoActivePeriodError,
    PeriodNotFoundError,
    PeriodService,
    PeriodValidationError,
)
from odin.utils.config import get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["admin"])


class LoginRequest(BaseModel):
    director_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class MemberCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=254)
    area: str = Field(min_length=1, max_length=60)


class MemberResponse(BaseModel):
    member_id: int
    name: str
    email: str
    area: str
    status: MemberStatus
    created_at: datetime

    @classmethod
    def from_domain(cls, member: Member) -> "MemberResponse":
        return cls(
            member_id=member.member_id,
            name=member.name,
            email=member.email,
            area=member.area,
            status=member.status,
            created_at=member.created_at,
        )


class ScoringPeriodRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class ScoringPeriodResponse(BaseModel):
    period_id: int
    name: str
    is_active: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, period: ScoringPeriod) -> "ScoringPeriodResponse":
        return cls(
            period_id=period.period_id,
            name=period.name,
            is_active=period.is_active,
            created_at=period.created_at,
        )


class SemesterRequest(BaseModel):
    name: str = Field(pattern=settings.semester_name_regex)
    starts_on: date
    ends_on: date

    @field_validator("ends_on")
    @classmethod
    def validate_range(cls, value: date, info: ValidationInfo) -> date:
        starts_on = info.data.get("starts_on")
        if starts_on is not None and value < starts_on:
            raise ValueError("ends_on must not be before starts_on")
        return value


class SemesterResponse(BaseModel):
    semester_id: int
    name: str
    starts_on: date
    ends_on: date
    is_active: bool

    @classmethod
    def from_domain(cls, semester: Semester) -> "SemesterResponse":
        return cls(
            semester_id=semester.semester_id,
            name=semester.name,
            starts_on=semester.starts_on,
            ends_on=semester.ends_on,
            is_active=semester.is_active,
        )


def _member_error(exc: Exception) -> HTTPException:
    code = (
        status.HTTP_404_NOT_FOUND
        if isinstance(exc, MemberNotFoundError)
        else status.HTTP_400_BAD_REQUEST
    )
    return HTTPException(status_code=code, detail=str(exc))


def _period_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PeriodNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, NoActivePeriodError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        bearer, expires_at = auth_service.login(payload.director_token)
        return LoginResponse(access_token=bearer, expires_at=expires_at)
    except (DirectorTokenNotConfiguredError, InvalidDirectorTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected login failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to login",
        ) from exc


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict[str, str]:
    if credentials is not None:
        auth_service.logout(credentials.credentials)
    return {"status": "logged_out"}


@router.post("/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def register_member(
    payload: MemberCreateRequest,
    member_service: MemberService = Depends(get_member_service),
) -> MemberResponse:
    try:
        member = member_service.register_member(payload.name, payload.email, payload.area)
        return MemberResponse.from_domain(member)
    except MemberValidationError as exc:
        raise _member_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected member registration failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register member",
        ) from exc


@router.get("/members", response_model=list[MemberResponse], status_code=status.HTTP_200_OK)
async def list_members(
    member_status: Optional[MemberStatus] = Query(default=None, alias="status"),
    member_service: MemberService = Depends(get_member_service),
) -> list[MemberResponse]:
    try:
        return [MemberResponse.from_domain(member) for member in member_service.list_members(member_status)]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected member listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list members",
        ) from exc


@router.post(
    "/members/{member_id}/approve",
    response_model=MemberResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def approve_member(
    member_id: int,
    member_service: MemberService = Depends(get_member_service),
) -> MemberResponse:
    try:
        return MemberResponse.from_domain(member_service.approve_member(member_id))
    except (MemberNotFoundError, MemberValidationError) as exc:
        raise _member_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected member approval failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve member",
        ) from exc


@router.post(
    "/members/{member_id}/reject",
    response_model=MemberResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def reject_member(
    member_id: int,
    member_service: MemberService = Depends(get_member_service),
) -> MemberResponse:
    try:
        return MemberResponse.from_domain(member_service.reject_member(member_id))
    except (MemberNotFoundError, MemberValidationError) as exc:
        raise _member_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected member rejection failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reject member",
        ) from exc


@router.get(
    "/scoring-periods",
    response_model=list[ScoringPeriodResponse],
    status_code=status.HTTP_200_OK,
)
async def list_scoring_periods(
    period_service: PeriodService = Depends(get_period_service),
) -> list[ScoringPeriodResponse]:
    return [ScoringPeriodResponse.from_domain(period) for period in period_service.list_scoring_periods()]


@router.post(
    "/scoring-periods",
    response_model=ScoringPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def create_scoring_period(
    payload: ScoringPeriodRequest,
    period_service: PeriodService = Depends(get_period_service),
) -> ScoringPeriodResponse:
    try:
        return ScoringPeriodResponse.from_domain(period_service.create_scoring_period(payload.name))
    except PeriodValidationError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scoring period creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create scoring period",
        ) from exc


@router.post(
    "/scoring-periods/{period_id}/activate",
    response_model=ScoringPeriodResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def activate_scoring_period(
    period_id: int,
    period_service: PeriodService = Depends(get_period_service),
) -> ScoringPeriodResponse:
    try:
        return ScoringPeriodResponse.from_domain(period_service.activate_scoring_period(period_id))
    except PeriodNotFoundError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scoring period activation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate scoring period",
        ) from exc


@router.post(
    "/scoring-periods/{period_id}/deactivate",
    response_model=ScoringPeriodResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def deactivate_scoring_period(
    period_id: int,
    period_service: PeriodService = Depends(get_period_service),
) -> ScoringPeriodResponse:
    try:
        return ScoringPeriodResponse.from_domain(period_service.deactivate_scoring_period(period_id))
    except PeriodNotFoundError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scoring period deactivation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deactivate scoring period",
        ) from exc


@router.get("/semesters", response_model=list[SemesterResponse], status_code=status.HTTP_200_OK)
async def list_semesters(
    period_service: PeriodService = Depends(get_period_service),
) -> list[SemesterResponse]:
    return [SemesterResponse.from_domain(semester) for semester in period_service.list_semesters()]


@router.post(
    "/semesters",
    response_model=SemesterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def create_semester(
    payload: SemesterRequest,
    period_service: PeriodService = Depends(get_period_service),
) -> SemesterResponse:
    try:
        semester = period_service.create_semester(payload.name, payload.starts_on, payload.ends_on)
        return SemesterResponse.from_domain(semester)
    except PeriodValidationError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected semester creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create semester",
        ) from exc


@router.post(
    "/semesters/{semester_id}/activate",
    response_model=SemesterResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def activate_semester(
    semester_id: int,
    period_service: PeriodService = Depends(get_period_service),
) -> SemesterResponse:
    try:
        return SemesterResponse.from_domain(period_service.activate_semester(semester_id))
    except PeriodNotFoundError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected semester activation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to activate semester",
        ) from exc


@router.post(
    "/semesters/{semester_id}/deactivate",
    response_model=SemesterResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def deactivate_semester(
    semester_id: int,
    period_service: PeriodService = Depends(get_period_service),
) -> SemesterResponse:
    try:
        return SemesterResponse.from_domain(period_service.deactivate_semester(semester_id))
    except PeriodNotFoundError as exc:
        raise _period_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected semester deactivation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deactivate semester",
        ) from exc
