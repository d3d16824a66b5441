"""Booking writer and cancellation.

The overlap check below re-reads the coach's bookings at write time; the
availability shown to the user earlier may be stale. Two concurrent requests
can both pass that check, so the partial unique index on
``(coach_id, start_time)`` is what finally rejects the second insert.
"""

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.core import config
from coachbook.errors import BookingConflict, DomainError, Forbidden, NotFound, PaymentRequired, RemoteFailure, ValidationError
from coachbook.models.booking import (
    PAYMENT_DIRECT_PAY,
    PAYMENT_HYBRID_CREDIT,
    PAYMENT_METHODS,
    PAYMENT_PACKAGE,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Booking,
)
from coachbook.models.purchased_package import PACKAGE_STATUS_ACTIVE, PACKAGE_STATUS_DEPLETED, PurchasedPackage
from coachbook.models.user import User
from coachbook.realtime import EVENT_INSERT, EVENT_UPDATE, change_feed
from coachbook.services import payments
from coachbook.services.booking_reader import booking_row, find_overlapping_bookings, get_service_type
from coachbook.services.schedule_store import list_blocked_times, naive_local

logger = logging.getLogger(__name__)

MAX_BOOKING_NOTES_LENGTH = 600
DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class BookingRequest(BaseModel):
    service_type_id: int
    coach_id: int
    start_time: datetime
    end_time: datetime
    payment_method: str
    purchased_package_id: int | None = None
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return naive_local(value)

    @field_validator('payment_method')
    @classmethod
    def validate_payment_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in PAYMENT_METHODS:
            raise ValueError('Invalid payment method.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized


class BookingResult:
    def __init__(self, booking: Booking, checkout_url: str | None = None) -> None:
        self.booking = booking
        self.checkout_url = checkout_url


def _validate_request(caller: Caller, request: BookingRequest, now: datetime) -> None:
    if request.end_time <= request.start_time:
        raise ValidationError('Booking must end after it starts.')

    if request.start_time < now:
        raise ValidationError('Bookings must be scheduled in the future.')

    if request.payment_method == PAYMENT_PACKAGE and request.purchased_package_id is None:
        raise ValidationError('A package must be selected to book with package credits.')

    if caller.is_guest:
        if request.payment_method != PAYMENT_DIRECT_PAY:
            raise ValidationError('Sign in to book with credits or a package.')
        if not caller.email:
            raise ValidationError('Guest email is required.')


def _consume_hybrid_credit(db: Session, caller: Caller) -> None:
    user = db.query(User).filter(User.id == caller.user_id).first()
    if user is None:
        raise NotFound('Profile not found.')

    remaining = user.hybrid_credits_remaining or 0
    if remaining <= 0:
        raise PaymentRequired('No hybrid credits available. Please use a package or pay directly.')

    user.hybrid_credits_remaining = remaining - 1
    logger.info('Hybrid credit deducted for user %s, %s remaining', caller.user_id, remaining - 1)


def _consume_package_session(db: Session, caller: Caller, package_id: int, now: datetime) -> None:
    package = db.query(PurchasedPackage).filter(
        PurchasedPackage.id == package_id,
        PurchasedPackage.user_id == caller.user_id,
        PurchasedPackage.status == PACKAGE_STATUS_ACTIVE,
    ).first()

    if package is None:
        raise PaymentRequired('Package not found or not active.')
    if package.sessions_remaining <= 0:
        raise PaymentRequired('No sessions remaining in package.')
    if package.expires_at < now:
        raise PaymentRequired('Package has expired.')

    package.sessions_remaining -= 1
    if package.sessions_remaining <= 0:
        package.status = PACKAGE_STATUS_DEPLETED
    logger.info('Package %s session deducted, %s remaining', package_id, package.sessions_remaining)


def create_booking(
    db: Session,
    caller: Caller,
    request: BookingRequest,
    now: datetime | None = None,
) -> BookingResult:
    now = now or datetime.now()
    _validate_request(caller, request, now)

    checkout_url = None
    try:
        service_type = get_service_type(db, request.service_type_id)
        if service_type is None or not service_type.is_active:
            raise ValidationError('Service type not found.')

        expected_duration = timedelta(minutes=service_type.duration_minutes)
        if request.end_time - request.start_time != expected_duration:
            raise ValidationError(f'{service_type.name} bookings must last {service_type.duration_minutes} minutes.')

        if list_blocked_times(db, request.coach_id, request.start_time, request.end_time):
            raise BookingConflict('The coach is unavailable at this time.')

        if find_overlapping_bookings(db, request.coach_id, request.start_time, request.end_time):
            raise BookingConflict()

        if request.payment_method == PAYMENT_HYBRID_CREDIT:
            _consume_hybrid_credit(db, caller)
        elif request.payment_method == PAYMENT_PACKAGE:
            _consume_package_session(db, caller, request.purchased_package_id, now)

        direct_pay = request.payment_method == PAYMENT_DIRECT_PAY
        booking = Booking(
            coach_id=request.coach_id,
            user_id=caller.user_id,
            guest_email=caller.email if caller.is_guest else None,
            service_type_id=service_type.id,
            start_time=request.start_time,
            end_time=request.end_time,
            status=STATUS_PENDING if direct_pay else STATUS_CONFIRMED,
            payment_method=request.payment_method,
            purchased_package_id=request.purchased_package_id if request.payment_method == PAYMENT_PACKAGE else None,
            amount_paid=payments.price_for(service_type, caller) if direct_pay else 0,
            notes=request.notes,
        )
        db.add(booking)
        db.flush()

        if direct_pay:
            checkout = payments.create_checkout_session(booking, service_type, caller)
            booking.stripe_session_id = checkout.session_id
            checkout_url = checkout.url

        db.commit()
        db.refresh(booking)
    except DomainError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise BookingConflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE) from exc

    logger.info(
        'Booking %s created for coach %s at %s via %s',
        booking.id,
        booking.coach_id,
        booking.start_time,
        booking.payment_method,
    )
    change_feed.publish('bookings', EVENT_INSERT, booking_row(booking))
    return BookingResult(booking, checkout_url)


def cancel_booking(
    db: Session,
    caller: Caller,
    booking_id: int,
    now: datetime | None = None,
) -> Booking:
    """Mark a booking cancelled. Consumed credits and package sessions are not restored."""
    now = now or datetime.now()

    try:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            raise NotFound('Booking not found.')

        owns_booking = (
            booking.user_id == caller.user_id
            if not caller.is_guest
            else booking.user_id is None and booking.guest_email == caller.email
        )
        if not owns_booking and not caller.is_admin:
            raise Forbidden('Only the member who made this booking can cancel it.')

        if booking.status == STATUS_CANCELLED:
            raise ValidationError('Booking is already cancelled.')

        if booking.start_time <= now:
            raise ValidationError('Past bookings cannot be cancelled.')

        notice = timedelta(hours=config.CANCELLATION_NOTICE_HOURS)
        if booking.start_time - now < notice and not caller.is_admin:
            raise ValidationError(
                f'Bookings can only be cancelled at least {config.CANCELLATION_NOTICE_HOURS} hours in advance.'
            )

        booking.status = STATUS_CANCELLED
        booking.cancelled_at = now
        db.commit()
        db.refresh(booking)
    except DomainError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise RemoteFailure(DATABASE_UNAVAILABLE) from exc

    logger.info('Booking %s cancelled by %s', booking.id, caller.email)
    change_feed.publish('bookings', EVENT_UPDATE, booking_row(booking))
    return booking
