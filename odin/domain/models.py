"""Domain models for reservations and the JR Points ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional

from odin.domain.constraints import validate_interval_bounds


class ResourceKind(str, Enum):
    ROOM = "ROOM"
    ITEM = "ITEM"
    EXTERNAL = "EXTERNAL"


class ItemStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MemberStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SolicitationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TargetKind(str, Enum):
    MEMBER = "MEMBER"
    ENTERPRISE = "ENTERPRISE"


class WindowStatus(str, Enum):
    FREE = "FREE"
    FREE_UNTIL = "FREE_UNTIL"
    OCCUPIED = "OCCUPIED"


@dataclass(frozen=True)
class TimeInterval:
    """Half-open ``[start, end)`` range between two aware datetimes."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        validate_interval_bounds(self.start, self.end)

    def overlaps(self, other: TimeInterval) -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def clip(self, window: TimeInterval) -> Optional[TimeInterval]:
        if not self.overlaps(window):
            return None
        return TimeInterval(max(self.start, window.start), min(self.end, window.end))


@dataclass(frozen=True)
class Booking:
    booking_id: int
    kind: ResourceKind
    resource_id: int
    owner_id: int
    interval: TimeInterval
    title: str
    status: BookingStatus = BookingStatus.APPROVED
    description: str = ""

    @property
    def occupies_time(self) -> bool:
        # pending or rejected external requests never block the calendar
        return self.status is BookingStatus.APPROVED


@dataclass(frozen=True)
class Resource:
    """Bookable entity; rooms and items match by id, the external resource matches by kind."""

    kind: ResourceKind
    resource_id: int
    name: str
    status: ItemStatus = ItemStatus.AVAILABLE
    areas: tuple[str, ...] = ()
    description: str = ""

    def matches(self, booking: Booking) -> bool:
        if booking.kind is not self.kind:
            return False
        if self.kind is ResourceKind.EXTERNAL:
            return True
        return booking.resource_id == self.resource_id

    def occupied_intervals(self, bookings: Iterable[Booking]) -> list[Booking]:
        return [booking for booking in bookings if self.matches(booking) and booking.occupies_time]

    @property
    def is_bookable(self) -> bool:
        return self.kind is not ResourceKind.ITEM or self.status is ItemStatus.AVAILABLE


@dataclass(frozen=True)
class Available:
    resource_id: int

    @property
    def is_available(self) -> bool:
        return True


@dataclass(frozen=True)
class Conflict:
    resource_id: int
    booking: Booking

    @property
    def is_available(self) -> bool:
        return False


@dataclass(frozen=True)
class OccupiedSlot:
    booking_id: int
    kind: ResourceKind
    interval: TimeInterval
    title: str
    owner_id: int


@dataclass(frozen=True)
class DailyOccupancy:
    resource: Resource
    slots: tuple[OccupiedSlot, ...]


@dataclass(frozen=True)
class AvailabilityWindow:
    """Answer to "when is this free?".

    ``OCCUPIED`` carries the covering booking and ``until`` is its end;
    ``FREE_UNTIL`` carries the start of the next booking; ``FREE`` has neither.
    """

    status: WindowStatus
    resource_id: int
    until: Optional[datetime] = None
    booking: Optional[Booking] = None


@dataclass(frozen=True)
class TagTemplate:
    template_id: int
    name: str
    base_value: int
    is_scalable: bool = False
    escalation_value: Optional[int] = None
    escalation_streak_days: Optional[int] = None
    description: str = ""
    areas: tuple[str, ...] = ()
    period_id: Optional[int] = None


@dataclass(frozen=True)
class Tag:
    tag_id: int
    template_id: int
    target_id: str
    value: int
    date_performed: datetime
    description: str = ""
    assigner_id: Optional[int] = None
    period_id: Optional[int] = None
    semester_id: Optional[int] = None
    snapshot_semester_id: Optional[int] = None


@dataclass(frozen=True)
class ScoringPeriod:
    period_id: int
    name: str
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class Semester:
    semester_id: int
    name: str
    starts_on: date
    ends_on: date
    is_active: bool


@dataclass(frozen=True)
class ScoreTarget:
    """A member or the enterprise pseudo-member; ``registration_seq`` orders ties."""

    target_id: str
    display_name: str
    kind: TargetKind
    registration_seq: int


@dataclass(frozen=True)
class RankingEntry:
    position: int
    target: ScoreTarget
    total_points: int
    tag_count: int


@dataclass(frozen=True)
class Snapshot:
    semester_id: int
    semester_name: str
    target_id: str
    total_points: int
    taken_at: datetime


@dataclass(frozen=True)
class Member:
    member_id: int
    name: str
    email: str
    area: str
    status: MemberStatus
    created_at: datetime


@dataclass(frozen=True)
class Solicitation:
    solicitation_id: int
    requester_id: int
    target_ids: tuple[str, ...]
    template_ids: tuple[int, ...]
    date_performed: datetime
    description: str
    is_for_enterprise: bool
    status: SolicitationStatus
    reviewer_notes: str = ""
