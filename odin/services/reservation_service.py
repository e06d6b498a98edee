"""Room, item and external-room reservations on top of the availability resolver."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from odin.domain.models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    Conflict,
    DailyOccupancy,
    ItemStatus,
    Member,
    Resource,
    ResourceKind,
    TimeInterval,
)
from odin.repository.data_repository import DataRepository, StaleWriteError
from odin.services.availability_service import (
    build_daily_occupancy,
    check_availability,
    next_available_window,
)
from odin.services.member_service import MemberService
from odin.utils.config import Settings, get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)


class ReservationError(Exception):
    """Base reservation failure."""


class ReservationValidationError(ReservationError):
    """Raised when reservation inputs are invalid."""


class ResourceNotFoundError(ReservationError):
    """Raised when a room or item id does not exist."""


class ResourceUnavailableError(ReservationError):
    """Raised when an item is in use or under maintenance."""


class AreaNotAllowedError(ReservationError):
    """Raised when an item is restricted to areas the member does not belong to."""


class BookingNotFoundError(ReservationError):
    """Raised when a booking id does not exist."""


class BookingPermissionError(ReservationError):
    """Raised when a member changes a booking they do not own."""


class BookingConflictError(ReservationError):
    """Raised when the requested interval overlaps an existing booking."""

    def __init__(self, conflict: Conflict) -> None:
        self.conflict = conflict
        blocking = conflict.booking
        super().__init__(
            f"Interval overlaps booking {blocking.booking_id} "
            f"'{blocking.title}' ({blocking.interval.start.isoformat()} - "
            f"{blocking.interval.end.isoformat()})"
        )


class StaleBookingListError(ReservationError):
    """Raised when concurrent writers kept changing the booking list until retries ran out."""


class ReservationService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        member_service: Optional[MemberService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._member_service = member_service or MemberService(
            repository=self._repository,
            settings=self._settings,
        )
        self._tz = ZoneInfo(self._settings.timezone)

    @property
    def settings(self) -> Settings:
        return self._settings

    # --- resources ---

    def external_resource(self) -> Resource:
        return Resource(
            kind=ResourceKind.EXTERNAL,
            resource_id=self._settings.external_resource_id,
            name=self._settings.external_resource_name,
        )

    def list_resources(self) -> list[Resource]:
        return [
            *self._repository.list_rooms(),
            *self._repository.list_items(),
            self.external_resource(),
        ]

    def get_resource(self, kind: ResourceKind, resource_id: int) -> Resource:
        if kind is ResourceKind.EXTERNAL:
            return self.external_resource()
        candidates = (
            self._repository.list_rooms()
            if kind is ResourceKind.ROOM
            else self._repository.list_items()
        )
        for resource in candidates:
            if resource.resource_id == resource_id:
                return resource
        raise ResourceNotFoundError(f"{kind.value.title()} {resource_id} not found")

    def create_room(self, name: str, description: str = "") -> Resource:
        clean_name = name.strip()
        if not clean_name:
            raise ReservationValidationError("room name must not be blank")
        if any(room.name == clean_name for room in self._repository.list_rooms()):
            raise ReservationValidationError(f"room '{clean_name}' already exists")
        room = self._repository.create_room(clean_name, description.strip())
        logger.info("Created room %s (%s)", room.resource_id, room.name)
        return room

    def create_item(self, name: str, areas: Sequence[str], description: str = "") -> Resource:
        clean_name = name.strip()
        clean_areas = tuple(dict.fromkeys(area.strip().upper() for area in areas if area.strip()))
        if not clean_name:
            raise ReservationValidationError("item name must not be blank")
        if not clean_areas:
            raise ReservationValidationError("item must allow at least one area")
        if any(item.name == clean_name for item in self._repository.list_items()):
            raise ReservationValidationError(f"item '{clean_name}' already exists")
        item = self._repository.create_item(clean_name, clean_areas, description.strip())
        logger.info("Created item %s (%s) for areas %s", item.resource_id, item.name, clean_areas)
        return item

    def update_item_status(self, item_id: int, status: ItemStatus) -> Resource:
        self.get_resource(ResourceKind.ITEM, item_id)
        self._repository.set_item_status(item_id, status)
        logger.info("Item %s status set to %s", item_id, status.value)
        return self.get_resource(ResourceKind.ITEM, item_id)

    # --- bookings ---

    def list_bookings(
        self,
        kind: ResourceKind,
        resource_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        bookings = self._repository.list_bookings(kind, resource_id)
        if status is not None:
            bookings = [booking for booking in bookings if booking.status is status]
        return bookings

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def create_booking(
        self,
        kind: ResourceKind,
        resource_id: int,
        owner_id: int,
        start: datetime,
        end: datetime,
        title: str,
        description: str = "",
    ) -> Booking:
        if kind is ResourceKind.EXTERNAL:
            raise ReservationValidationError("External rooms are requested, not booked directly")
        interval = TimeInterval(start, end)
        clean_title = title.strip()
        if not clean_title:
            raise ReservationValidationError("title must not be blank")

        resource = self.get_resource(kind, resource_id)
        if not resource.is_bookable:
            raise ResourceUnavailableError(
                f"{resource.name} is {resource.status.value.lower()} and cannot be booked"
            )
        owner = self._member_service.require_approved(owner_id)
        self._ensure_area_allowed(resource, owner)

        draft = Booking(
            booking_id=0,
            kind=kind,
            resource_id=resource_id,
            owner_id=owner_id,
            interval=interval,
            title=clean_title,
            description=description.strip(),
        )
        return self._commit(draft, check_conflicts=True)

    def reschedule_booking(
        self,
        booking_id: int,
        start: datetime,
        end: datetime,
        actor_id: Optional[int],
        is_director: bool = False,
    ) -> Booking:
        interval = TimeInterval(start, end)
        booking = self.get_booking(booking_id)
        self._ensure_can_modify(booking, actor_id, is_director)
        if booking.kind is ResourceKind.EXTERNAL:
            raise ReservationValidationError(
                "External room requests are changed by their applicant while still pending"
            )
        resource = self.get_resource(booking.kind, booking.resource_id)
        if not resource.is_bookable:
            raise ResourceUnavailableError(
                f"{resource.name} is {resource.status.value.lower()} and cannot be booked"
            )
        return self._commit(replace(booking, interval=interval), check_conflicts=True)

    def delete_booking(self, booking_id: int, actor_id: Optional[int], is_director: bool) -> None:
        booking = self.get_booking(booking_id)
        self._ensure_can_modify(booking, actor_id, is_director)
        if not self._repository.delete_booking(booking_id):
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        logger.info("Deleted booking %s (%s %s)", booking_id, booking.kind.value, booking.resource_id)

    def submit_external_request(
        self,
        owner_id: int,
        start: datetime,
        end: datetime,
        title: str,
        description: str = "",
    ) -> Booking:
        """File a request for a room owned by a third party; it blocks time only once approved."""
        interval = TimeInterval(start, end)
        clean_title = title.strip()
        if not clean_title:
            raise ReservationValidationError("title must not be blank")
        self._member_service.require_approved(owner_id)
        draft = Booking(
            booking_id=0,
            kind=ResourceKind.EXTERNAL,
            resource_id=self._settings.external_resource_id,
            owner_id=owner_id,
            interval=interval,
            title=clean_title,
            status=BookingStatus.PENDING,
            description=description.strip(),
        )
        return self._commit(draft, check_conflicts=False)

    def edit_external_request(
        self,
        booking_id: int,
        actor_id: Optional[int],
        start: datetime,
        end: datetime,
        title: str,
        description: Optional[str] = None,
    ) -> Booking:
        """Only the applicant may edit, and only before the third party answers."""
        interval = TimeInterval(start, end)
        clean_title = title.strip()
        if not clean_title:
            raise ReservationValidationError("title must not be blank")
        booking = self._pending_external_request(booking_id)
        self._ensure_can_modify(booking, actor_id, is_director=False)
        draft = replace(
            booking,
            interval=interval,
            title=clean_title,
            description=booking.description if description is None else description.strip(),
        )
        return self._commit(draft, check_conflicts=False)

    def review_external_request(self, booking_id: int, approve: bool) -> Booking:
        self._pending_external_request(booking_id)
        decision = BookingStatus.APPROVED if approve else BookingStatus.REJECTED
        self._repository.set_booking_status(booking_id, decision)
        logger.info("External request %s %s", booking_id, decision.value.lower())
        return self.get_booking(booking_id)

    # --- views ---

    def daily_schedule(self, day: date) -> list[DailyOccupancy]:
        return build_daily_occupancy(
            self.list_resources(),
            self._repository.list_all_bookings(),
            day,
            self._tz,
        )

    def resource_window(
        self,
        kind: ResourceKind,
        resource_id: int,
        at: Optional[datetime] = None,
    ) -> AvailabilityWindow:
        resource = self.get_resource(kind, resource_id)
        moment = at or datetime.now(self._tz)
        if moment.tzinfo is None:
            raise ReservationValidationError("instant must be timezone-aware")
        bookings = resource.occupied_intervals(self._repository.list_bookings(kind, resource_id))
        return next_available_window(resource.resource_id, bookings, moment)

    # --- internals ---

    def _pending_external_request(self, booking_id: int) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.kind is not ResourceKind.EXTERNAL:
            raise ReservationValidationError(f"Booking {booking_id} is not an external request")
        if booking.status is not BookingStatus.PENDING:
            raise ReservationValidationError(
                f"External request {booking_id} was already {booking.status.value.lower()}"
            )
        return booking

    def _ensure_area_allowed(self, resource: Resource, owner: Member) -> None:
        if resource.kind is not ResourceKind.ITEM:
            return
        allowed = set(resource.areas)
        if allowed.intersection(self._settings.unrestricted_item_areas):
            return
        if owner.area not in allowed:
            raise AreaNotAllowedError(
                f"{resource.name} is restricted to {', '.join(sorted(allowed))}"
            )

    @staticmethod
    def _ensure_can_modify(booking: Booking, actor_id: Optional[int], is_director: bool) -> None:
        if is_director:
            return
        if actor_id is None or booking.owner_id != actor_id:
            raise BookingPermissionError(
                f"Only the owner or a director may change booking {booking.booking_id}"
            )

    def _commit(self, draft: Booking, check_conflicts: bool) -> Booking:
        attempts = self._settings.booking_commit_retries + 1
        for attempt in range(1, attempts + 1):
            # version is read before the list so a concurrent write always moves it
            version = self._repository.booking_list_version(draft.kind, draft.resource_id)
            if draft.booking_id:
                current = self.get_booking(draft.booking_id)
                if current.status is not draft.status:
                    raise ReservationValidationError(
                        f"Booking {draft.booking_id} was {current.status.value.lower()} meanwhile"
                    )
            if check_conflicts:
                existing = [
                    booking
                    for booking in self._repository.list_bookings(draft.kind, draft.resource_id)
                    if booking.occupies_time
                ]
                result = check_availability(
                    draft.resource_id,
                    draft.interval,
                    existing,
                    exclude_booking_id=draft.booking_id or None,
                )
                if isinstance(result, Conflict):
                    raise BookingConflictError(result)
            try:
                committed = self._repository.commit_booking(draft, version)
            except StaleWriteError:
                logger.warning(
                    "Booking list for %s %s changed during commit (attempt %s/%s)",
                    draft.kind.value,
                    draft.resource_id,
                    attempt,
                    attempts,
                )
                continue
            logger.info(
                "Committed booking %s on %s %s",
                committed.booking_id,
                committed.kind.value,
                committed.resource_id,
            )
            return committed

        raise StaleBookingListError(
            f"Booking list for {draft.kind.value} {draft.resource_id} kept changing; try again"
        )
