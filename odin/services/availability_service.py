"""Booking conflict resolution and the unified occupancy view.

Everything here is a pure function over bookings the caller has already
loaded. Callers scope the booking list to the resource being checked; the
resolver itself does not filter by resource.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from odin.domain.models import (
    Available,
    AvailabilityWindow,
    Booking,
    Conflict,
    DailyOccupancy,
    OccupiedSlot,
    Resource,
    TimeInterval,
    WindowStatus,
)


AvailabilityResult = Union[Available, Conflict]


def check_availability(
    resource_id: int,
    candidate: TimeInterval,
    existing_bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
) -> AvailabilityResult:
    """Return ``Conflict`` with the first overlapping booking, else ``Available``."""
    for booking in existing_bookings:
        if exclude_booking_id is not None and booking.booking_id == exclude_booking_id:
            continue
        if candidate.overlaps(booking.interval):
            return Conflict(resource_id=resource_id, booking=booking)
    return Available(resource_id=resource_id)


def day_window(day: date, tz: ZoneInfo) -> TimeInterval:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return TimeInterval(start, end)


def build_daily_occupancy(
    resources: Sequence[Resource],
    bookings: Sequence[Booking],
    day: date,
    tz: ZoneInfo,
) -> list[DailyOccupancy]:
    """Clip each resource's occupying bookings to the local calendar day."""
    window = day_window(day, tz)
    grid: list[DailyOccupancy] = []
    for resource in resources:
        slots: list[OccupiedSlot] = []
        for booking in resource.occupied_intervals(bookings):
            clipped = booking.interval.clip(window)
            if clipped is None:
                continue
            slots.append(
                OccupiedSlot(
                    booking_id=booking.booking_id,
                    kind=booking.kind,
                    interval=clipped,
                    title=booking.title,
                    owner_id=booking.owner_id,
                )
            )
        slots.sort(key=lambda slot: (slot.interval.start, slot.booking_id))
        grid.append(DailyOccupancy(resource=resource, slots=tuple(slots)))
    return grid


def next_available_window(
    resource_id: int,
    bookings: Iterable[Booking],
    from_instant: datetime,
) -> AvailabilityWindow:
    nearest_future: Optional[Booking] = None
    for booking in bookings:
        if booking.interval.contains(from_instant):
            return AvailabilityWindow(
                status=WindowStatus.OCCUPIED,
                resource_id=resource_id,
                until=booking.interval.end,
                booking=booking,
            )
        if booking.interval.start > from_instant and (
            nearest_future is None or booking.interval.start < nearest_future.interval.start
        ):
            nearest_future = booking

    if nearest_future is None:
        return AvailabilityWindow(status=WindowStatus.FREE, resource_id=resource_id)
    return AvailabilityWindow(
        status=WindowStatus.FREE_UNTIL,
        resource_id=resource_id,
        until=nearest_future.interval.start,
        booking=nearest_future,
    )
