"""Bookable time slots for one coach on one date.

Slots are computed fresh on every call from the coach's weekly windows, the
blocked times and the live bookings touching the date. Slots that are not
bookable are left out rather than returned with ``available=False``, so an
empty list means the coach is either closed or fully booked that day.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from pydantic import BaseModel
from sqlalchemy.orm import Session

from coachbook.errors import ValidationError
from coachbook.models.blocked_time import BlockedTime
from coachbook.models.booking import Booking
from coachbook.models.coach_availability import AvailabilityWindow
from coachbook.services import schedule_store
from coachbook.services.booking_reader import day_bounds, list_bookings_for_coach


class TimeSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool = True


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection: touching end to start is not an overlap."""
    return start_a < end_b and end_a > start_b


def iterate_window_starts(
    slot_date: date,
    window: AvailabilityWindow,
    duration_minutes: int,
) -> list[datetime]:
    step = timedelta(minutes=duration_minutes)
    current = datetime.combine(slot_date, window.start_time)
    window_end = datetime.combine(slot_date, window.end_time)

    starts: list[datetime] = []
    while current + step <= window_end:
        starts.append(current)
        current += step
    return starts


def generate_slots(
    slot_date: date,
    duration_minutes: int,
    windows: Iterable[AvailabilityWindow],
    blocked_times: Iterable[BlockedTime],
    bookings: Iterable[Booking],
    now: datetime,
) -> list[TimeSlot]:
    if duration_minutes <= 0:
        raise ValidationError('Service duration must be a positive number of minutes.')

    duration = timedelta(minutes=duration_minutes)
    blocked_ranges = [(blocked.start_datetime, blocked.end_datetime) for blocked in blocked_times]
    booked_ranges = [(booking.start_time, booking.end_time) for booking in bookings]

    slots_by_start: dict[datetime, TimeSlot] = {}
    for window in windows:
        for start in iterate_window_starts(slot_date, window, duration_minutes):
            end = start + duration
            if start in slots_by_start or start < now:
                continue
            if any(intervals_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in blocked_ranges):
                continue
            if any(intervals_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in booked_ranges):
                continue
            slots_by_start[start] = TimeSlot(start_time=start, end_time=end)

    return [slots_by_start[start] for start in sorted(slots_by_start)]


def get_available_slots(
    db: Session,
    slot_date: date,
    coach_id: int,
    duration_minutes: int,
    now: datetime | None = None,
) -> list[TimeSlot]:
    if duration_minutes <= 0:
        raise ValidationError('Service duration must be a positive number of minutes.')

    windows = schedule_store.list_availability_windows(db, coach_id, schedule_store.day_of_week(slot_date))
    if not windows:
        return []

    day_start, day_end = day_bounds(slot_date)
    return generate_slots(
        slot_date=slot_date,
        duration_minutes=duration_minutes,
        windows=windows,
        blocked_times=schedule_store.list_blocked_times(db, coach_id, day_start, day_end),
        bookings=list_bookings_for_coach(db, coach_id, slot_date),
        now=now or datetime.now(),
    )
