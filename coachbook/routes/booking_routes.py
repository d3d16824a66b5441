from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.auth.dependencies import get_current_caller, require_admin
from coachbook.database import get_db
from coachbook.errors import DomainError, RemoteFailure
from coachbook.models.booking import STATUS_CANCELLED
from coachbook.routes.availability_routes import DATABASE_UNAVAILABLE, ensure_database_ready
from coachbook.services import booking_reader, bookings
from coachbook.services.bookings import BookingRequest

router = APIRouter(tags=['bookings'])


class GuestBookingRequest(BookingRequest):
    guest_email: str

    @field_validator('guest_email')
    @classmethod
    def validate_guest_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized or '@' not in normalized:
            raise ValueError('A valid email is required for guest bookings.')
        return normalized


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: int
    user_id: int | None = None
    guest_email: str | None = None
    service_type_id: int | None = None
    start_time: datetime
    end_time: datetime
    status: str
    payment_method: str
    purchased_package_id: int | None = None
    amount_paid: Decimal
    notes: str | None = None
    cancelled_at: datetime | None = None


class CreateBookingResponse(BaseModel):
    booking: BookingResponse
    checkout_url: str | None = None


class MyBookingsResponse(BaseModel):
    upcoming: list[BookingResponse]
    past: list[BookingResponse]


class ServiceTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    duration_minutes: int
    base_price: Decimal
    member_price: Decimal
    max_participants: int


class PurchasedPackageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sessions_total: int
    sessions_remaining: int
    expires_at: datetime
    status: str


def _create(db: Session, caller: Caller, data: BookingRequest) -> CreateBookingResponse:
    ensure_database_ready()

    try:
        result = bookings.create_booking(db, caller, data)
    except DomainError as exc:
        raise exc.to_http_exception() from exc

    return CreateBookingResponse(
        booking=BookingResponse.model_validate(result.booking),
        checkout_url=result.checkout_url,
    )


@router.get('/service-types', response_model=list[ServiceTypeResponse])
def list_service_types(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return booking_reader.list_service_types(db)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.get('/packages', response_model=list[PurchasedPackageResponse])
def list_my_packages(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_reader.list_active_packages(db, caller)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc


@router.post('', response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return _create(db, caller, data)


@router.post('/guest', response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
def create_guest_booking(data: GuestBookingRequest, db: Session = Depends(get_db)):
    return _create(db, Caller.guest(data.guest_email), data)


@router.get('/mine', response_model=MyBookingsResponse)
def list_my_bookings(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        caller_bookings = booking_reader.list_caller_bookings(db, caller)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc

    now = datetime.now()
    upcoming = [
        booking for booking in caller_bookings
        if booking.start_time > now and booking.status != STATUS_CANCELLED
    ]
    past = [booking for booking in caller_bookings if booking not in upcoming]
    return MyBookingsResponse(
        upcoming=[BookingResponse.model_validate(booking) for booking in upcoming],
        past=[BookingResponse.model_validate(booking) for booking in past],
    )


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.cancel_booking(db, caller, booking_id)
    except DomainError as exc:
        raise exc.to_http_exception() from exc


@router.get('/coach/{coach_id}', response_model=list[BookingResponse])
def list_coach_bookings(
    coach_id: int,
    slot_date: date = Query(..., alias='date'),
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del caller
    ensure_database_ready()

    try:
        return booking_reader.list_bookings_for_coach(db, coach_id, slot_date)
    except SQLAlchemyError as exc:
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc
