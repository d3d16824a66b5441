"""Coach availability and blocked-time stores.

Both stores only create, list and delete rows. An availability window is
edited by deleting it and creating a new one; a blocked time never changes
once written.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.errors import Forbidden, NotFound, ValidationError
from coachbook.models.blocked_time import BlockedTime
from coachbook.models.coach_availability import AvailabilityWindow

logger = logging.getLogger(__name__)


def _require_admin(caller: Caller, action: str) -> None:
    if not caller.is_admin:
        raise Forbidden(f'Only admins can {action}.')


def day_of_week(slot_date: date) -> int:
    """Day index with Sunday as 0, the convention stored on availability rows."""
    return (slot_date.weekday() + 1) % 7


def naive_local(value: datetime) -> datetime:
    """Stored datetimes are naive local time; offset-aware input is converted to it."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def create_availability_window(
    db: Session,
    caller: Caller,
    coach_id: int,
    weekday: int,
    start_time: time,
    end_time: time,
) -> AvailabilityWindow:
    _require_admin(caller, 'edit coach availability')

    if not 0 <= weekday <= 6:
        raise ValidationError('Day of week must be between 0 (Sunday) and 6 (Saturday).')
    if start_time >= end_time:
        raise ValidationError('Availability must end after it starts.')

    window = AvailabilityWindow(
        coach_id=coach_id,
        day_of_week=weekday,
        start_time=start_time,
        end_time=end_time,
    )
    db.add(window)
    db.commit()
    db.refresh(window)
    logger.info('Availability window %s created for coach %s', window.id, coach_id)
    return window


def list_availability_windows(
    db: Session,
    coach_id: int,
    weekday: int | None = None,
) -> list[AvailabilityWindow]:
    query = db.query(AvailabilityWindow).filter(AvailabilityWindow.coach_id == coach_id)
    if weekday is not None:
        query = query.filter(AvailabilityWindow.day_of_week == weekday)
    return query.order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc()).all()


def delete_availability_window(db: Session, caller: Caller, window_id: int) -> None:
    _require_admin(caller, 'edit coach availability')

    window = db.query(AvailabilityWindow).filter(AvailabilityWindow.id == window_id).first()
    if not window:
        raise NotFound('Availability window not found.')

    db.delete(window)
    db.commit()
    logger.info('Availability window %s deleted', window_id)


def create_blocked_time(
    db: Session,
    caller: Caller,
    coach_id: int,
    start_datetime: datetime,
    end_datetime: datetime,
    reason: str | None = None,
) -> BlockedTime:
    _require_admin(caller, 'block coach time')

    if start_datetime >= end_datetime:
        raise ValidationError('Blocked time must end after it starts.')

    blocked_time = BlockedTime(
        coach_id=coach_id,
        start_datetime=start_datetime,
        end_datetime=end_datetime,
        reason=reason,
    )
    db.add(blocked_time)
    db.commit()
    db.refresh(blocked_time)
    logger.info('Blocked time %s created for coach %s', blocked_time.id, coach_id)
    return blocked_time


def list_blocked_times(
    db: Session,
    coach_id: int,
    range_start: datetime,
    range_end: datetime,
) -> list[BlockedTime]:
    """Blocked times of a coach intersecting [range_start, range_end)."""
    return db.query(BlockedTime).filter(
        BlockedTime.coach_id == coach_id,
        BlockedTime.start_datetime < range_end,
        BlockedTime.end_datetime > range_start,
    ).order_by(BlockedTime.start_datetime.asc()).all()


def delete_blocked_time(db: Session, caller: Caller, blocked_time_id: int) -> None:
    _require_admin(caller, 'remove blocked time')

    blocked_time = db.query(BlockedTime).filter(BlockedTime.id == blocked_time_id).first()
    if not blocked_time:
        raise NotFound('Blocked time not found.')

    db.delete(blocked_time)
    db.commit()
    logger.info('Blocked time %s deleted', blocked_time_id)
