"""Controller layer for rooms, items, bookings and the unified schedule."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field, field_validator

from odin.controllers.dependencies import get_reservation_service, is_director, require_director
from odin.domain.constraints import InvalidIntervalError
from odin.domain.models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    DailyOccupancy,
    ItemStatus,
    Resource,
    ResourceKind,
    WindowStatus,
)
from odin.services.member_service import MemberError, MemberNotFoundError
from odin.services.reservation_service import (
    AreaNotAllowedError,
    BookingConflictError,
    BookingNotFoundError,
    BookingPermissionError,
    ReservationError,
    ReservationService,
    ResourceNotFoundError,
    ResourceUnavailableError,
    StaleBookingListError,
)
from odin.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["reservations"])


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("datetimes must include a UTC offset")
    return value


class ResourceResponse(BaseModel):
    kind: ResourceKind
    resource_id: int = Field(ge=0)
    name: str
    status: ItemStatus
    areas: list[str]
    description: str

    @classmethod
    def from_domain(cls, resource: Resource) -> "ResourceResponse":
        return cls(
            kind=resource.kind,
            resource_id=resource.resource_id,
            name=resource.name,
            status=resource.status,
            areas=list(resource.areas),
            description=resource.description,
        )


class RoomCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = ""


class ItemCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    areas: list[str] = Field(min_length=1)
    description: str = ""


class ItemStatusRequest(BaseModel):
    status: ItemStatus


class BookingRequest(BaseModel):
    kind: ResourceKind
    resource_id: int = Field(gt=0)
    owner_id: int = Field(gt=0)
    start: datetime
    end: datetime
    title: str = Field(min_length=1, max_length=200)
    description: str = ""

    @field_validator("start", "end")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)


class RescheduleRequest(BaseModel):
    start: datetime
    end: datetime
    actor_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("start", "end")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)


class ExternalRequestCreate(BaseModel):
    owner_id: int = Field(gt=0)
    start: datetime
    end: datetime
    title: str = Field(min_length=1, max_length=200)
    description: str = ""

    @field_validator("start", "end")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)


class ExternalRequestUpdate(BaseModel):
    actor_id: int = Field(gt=0)
    start: datetime
    end: datetime
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)


class ReviewRequest(BaseModel):
    approve: bool


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    kind: ResourceKind
    resource_id: int = Field(ge=0)
    owner_id: int
    start: datetime
    end: datetime
    title: str
    description: str
    status: BookingStatus

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            kind=booking.kind,
            resource_id=booking.resource_id,
            owner_id=booking.owner_id,
            start=booking.interval.start,
            end=booking.interval.end,
            title=booking.title,
            description=booking.description,
            status=booking.status,
        )


class ScheduleSlot(BaseModel):
    booking_id: int
    kind: ResourceKind
    start: datetime
    end: datetime
    title: str
    owner_id: int


class ScheduleRow(BaseModel):
    resource: ResourceResponse
    slots: list[ScheduleSlot]


class ScheduleResponse(BaseModel):
    day: date
    timezone: str
    day_start_hour: int
    day_end_hour: int
    resources: list[ScheduleRow]


class WindowResponse(BaseModel):
    status: WindowStatus
    resource_id: int
    until: Optional[datetime] = None
    booking_id: Optional[int] = None

    @classmethod
    def from_domain(cls, window: AvailabilityWindow) -> "WindowResponse":
        return cls(
            status=window.status,
            resource_id=window.resource_id,
            until=window.until,
            booking_id=None if window.booking is None else window.booking.booking_id,
        )


def _schedule_row(row: DailyOccupancy) -> ScheduleRow:
    return ScheduleRow(
        resource=ResourceResponse.from_domain(row.resource),
        slots=[
            ScheduleSlot(
                booking_id=slot.booking_id,
                kind=slot.kind,
                start=slot.interval.start,
                end=slot.interval.end,
                title=slot.title,
                owner_id=slot.owner_id,
            )
            for slot in row.slots
        ],
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, BookingConflictError):
        blocking = exc.conflict.booking
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "booking_id": blocking.booking_id,
                "start": blocking.interval.start.isoformat(),
                "end": blocking.interval.end.isoformat(),
            },
        )
    if isinstance(exc, (ResourceUnavailableError, StaleBookingListError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (ResourceNotFoundError, BookingNotFoundError, MemberNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (AreaNotAllowedError, BookingPermissionError)):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


@router.get("/resources", response_model=list[ResourceResponse], status_code=status.HTTP_200_OK)
async def list_resources(
    service: ReservationService = Depends(get_reservation_service),
) -> list[ResourceResponse]:
    try:
        return [ResourceResponse.from_domain(resource) for resource in service.list_resources()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected resource listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list resources",
        ) from exc


@router.post(
    "/rooms",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def create_room(
    payload: RoomCreateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ResourceResponse:
    try:
        return ResourceResponse.from_domain(service.create_room(payload.name, payload.description))
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create room",
        ) from exc


@router.post(
    "/items",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def create_item(
    payload: ItemCreateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ResourceResponse:
    try:
        item = service.create_item(payload.name, payload.areas, payload.description)
        return ResourceResponse.from_domain(item)
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected item creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create item",
        ) from exc


@router.patch(
    "/items/{item_id}/status",
    response_model=ResourceResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def update_item_status(
    item_id: int,
    payload: ItemStatusRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ResourceResponse:
    try:
        return ResourceResponse.from_domain(service.update_item_status(item_id, payload.status))
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected item status failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update item status",
        ) from exc


@router.get("/bookings", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
async def list_bookings(
    kind: ResourceKind = Query(...),
    resource_id: Optional[int] = Query(default=None, ge=0),
    service: ReservationService = Depends(get_reservation_service),
) -> list[BookingResponse]:
    try:
        return [BookingResponse.from_domain(booking) for booking in service.list_bookings(kind, resource_id)]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list bookings",
        ) from exc


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> BookingResponse:
    try:
        booking = service.create_booking(
            kind=payload.kind,
            resource_id=payload.resource_id,
            owner_id=payload.owner_id,
            start=payload.start,
            end=payload.end,
            title=payload.title,
            description=payload.description,
        )
        return BookingResponse.from_domain(booking)
    except (ReservationError, MemberError, InvalidIntervalError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.patch("/bookings/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
async def reschedule_booking(
    booking_id: int,
    payload: RescheduleRequest,
    director: bool = Depends(is_director),
    service: ReservationService = Depends(get_reservation_service),
) -> BookingResponse:
    try:
        booking = service.reschedule_booking(
            booking_id=booking_id,
            start=payload.start,
            end=payload.end,
            actor_id=payload.actor_id,
            is_director=director,
        )
        return BookingResponse.from_domain(booking)
    except (ReservationError, InvalidIntervalError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reschedule failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reschedule booking",
        ) from exc


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: int,
    actor_id: Optional[int] = Query(default=None, gt=0),
    director: bool = Depends(is_director),
    service: ReservationService = Depends(get_reservation_service),
) -> Response:
    try:
        service.delete_booking(booking_id, actor_id=actor_id, is_director=director)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking deletion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete booking",
        ) from exc


@router.get(
    "/external-requests",
    response_model=list[BookingResponse],
    status_code=status.HTTP_200_OK,
)
async def list_external_requests(
    request_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    service: ReservationService = Depends(get_reservation_service),
) -> list[BookingResponse]:
    try:
        bookings = service.list_bookings(ResourceKind.EXTERNAL, status=request_status)
        return [BookingResponse.from_domain(booking) for booking in bookings]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected external request listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list external requests",
        ) from exc


@router.post(
    "/external-requests",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_external_request(
    payload: ExternalRequestCreate,
    service: ReservationService = Depends(get_reservation_service),
) -> BookingResponse:
    try:
        booking = service.submit_external_request(
            owner_id=payload.owner_id,
            start=payload.start,
            end=payload.end,
            title=payload.title,
            description=payload.description,
        )
        return BookingResponse.from_domain(booking)
    except (ReservationError, MemberError, InvalidIntervalError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected external request failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit external request",
        ) from exc


@router.patch(
    "/external-requests/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def edit_external_request(
    booking_id: int,
    payload: ExternalRequestUpdate,
    service: ReservationService = Depends(get_reservation_service),
) -> BookingResponse:
    try:
        booking = service.edit_external_request(
            booking_id=booking_id,
            actor_id=payload.actor_id,
            start=payload.start,
            end=payload.end,
            title=payload.title,
            description=payload.description,
        )
        return BookingResponse.from_domain(booking)
    except (ReservationError, InvalidIntervalError) as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected external request edit failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to edit external request",
        ) from exc


@router.post(
    "/external-requests/{booking_id}/review",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def review_external_request(
    booking_id: int,
    payload: ReviewRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> BookingResponse:
    try:
        return BookingResponse.from_domain(service.review_external_request(booking_id, payload.approve))
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected external request review failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to review external request",
        ) from exc


@router.get("/schedule/{day}", response_model=ScheduleResponse, status_code=status.HTTP_200_OK)
async def daily_schedule(
    day: date,
    service: ReservationService = Depends(get_reservation_service),
) -> ScheduleResponse:
    try:
        rows = service.daily_schedule(day)
        settings = service.settings
        return ScheduleResponse(
            day=day,
            timezone=settings.timezone,
            day_start_hour=settings.schedule_day_start_hour,
            day_end_hour=settings.schedule_day_end_hour,
            resources=[_schedule_row(row) for row in rows],
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build schedule",
        ) from exc


@router.get(
    "/resources/{kind}/{resource_id}/window",
    response_model=WindowResponse,
    status_code=status.HTTP_200_OK,
)
async def resource_window(
    kind: ResourceKind,
    resource_id: int,
    at: Optional[datetime] = Query(default=None),
    service: ReservationService = Depends(get_reservation_service),
) -> WindowResponse:
    try:
        return WindowResponse.from_domain(service.resource_window(kind, resource_id, at))
    except ReservationError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability window failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability window",
        ) from exc
