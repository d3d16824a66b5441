from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.auth.dependencies import require_admin
from coachbook.core import config
from coachbook.database import ensure_booking_schema, get_db
from coachbook.errors import DomainError, RemoteFailure
from coachbook.services import schedule_store
from coachbook.services.booking_reader import day_bounds, get_service_type
from coachbook.services.slots import TimeSlot, get_available_slots

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'
MAX_BLOCKED_REASON_LENGTH = 200


class CreateAvailabilityWindowRequest(BaseModel):
    coach_id: int
    day_of_week: int
    start_time: time
    end_time: time


class AvailabilityWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: int
    day_of_week: int
    start_time: time
    end_time: time


class CreateBlockedTimeRequest(BaseModel):
    coach_id: int
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None

    @field_validator('start_datetime', 'end_datetime')
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return schedule_store.naive_local(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCKED_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCKED_REASON_LENGTH} characters or fewer.')

        return normalized


class BlockedTimeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: int
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


def resolve_duration_minutes(service_type_id: int | None, db: Session) -> int:
    if service_type_id is None:
        return config.DEFAULT_SERVICE_DURATION_MINUTES

    service_type = get_service_type(db, service_type_id)
    if service_type is None:
        return config.DEFAULT_SERVICE_DURATION_MINUTES
    return service_type.duration_minutes


@router.get('/slots', response_model=list[TimeSlot])
def list_available_slots(
    slot_date: date | None = Query(default=None, alias='date'),
    coach_id: int | None = Query(default=None),
    service_type_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if slot_date is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Date is required.')
    if coach_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Coach is required.')

    ensure_database_ready()

    try:
        duration_minutes = resolve_duration_minutes(service_type_id, db)
        return get_available_slots(db, slot_date, coach_id, duration_minutes)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.get('/windows', response_model=list[AvailabilityWindowResponse])
def list_availability_windows(
    coach_id: int = Query(...),
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.list_availability_windows(db, coach_id, day_of_week)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.post('/windows', response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_availability_window(
    data: CreateAvailabilityWindowRequest,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.create_availability_window(
            db,
            caller,
            coach_id=data.coach_id,
            weekday=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
        )
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_window(
    window_id: int,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        schedule_store.delete_availability_window(db, caller, window_id)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.get('/blocked-times', response_model=list[BlockedTimeResponse])
def list_blocked_times(
    coach_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        day_start, day_end = day_bounds(slot_date)
        return schedule_store.list_blocked_times(db, coach_id, day_start, day_end)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.post('/blocked-times', response_model=BlockedTimeResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_time(
    data: CreateBlockedTimeRequest,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_store.create_blocked_time(
            db,
            caller,
            coach_id=data.coach_id,
            start_datetime=data.start_datetime,
            end_datetime=data.end_datetime,
            reason=data.reason,
        )
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.delete('/blocked-times/{blocked_time_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_blocked_time(
    blocked_time_id: int,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        schedule_store.delete_blocked_time(db, caller, blocked_time_id)
    except DomainError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc
