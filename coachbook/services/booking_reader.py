from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.models.booking import ACTIVE_STATUSES, Booking
from coachbook.models.purchased_package import PACKAGE_STATUS_ACTIVE, PurchasedPackage
from coachbook.models.service_type import ServiceType


def day_bounds(slot_date: date) -> tuple[datetime, datetime]:
    day_start = datetime.combine(slot_date, time.min)
    return day_start, day_start + timedelta(days=1)


def find_overlapping_bookings(
    db: Session,
    coach_id: int,
    start_time: datetime,
    end_time: datetime,
) -> list[Booking]:
    """Pending or confirmed bookings of a coach intersecting [start_time, end_time)."""
    return db.query(Booking).filter(
        Booking.coach_id == coach_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.start_time < end_time,
        Booking.end_time > start_time,
    ).order_by(Booking.start_time.asc()).all()


def list_bookings_for_coach(db: Session, coach_id: int, slot_date: date) -> list[Booking]:
    day_start, day_end = day_bounds(slot_date)
    return find_overlapping_bookings(db, coach_id, day_start, day_end)


def list_caller_bookings(db: Session, caller: Caller) -> list[Booking]:
    query = db.query(Booking)
    if caller.is_guest:
        query = query.filter(Booking.user_id.is_(None), Booking.guest_email == caller.email)
    else:
        query = query.filter(Booking.user_id == caller.user_id)
    return query.order_by(Booking.start_time.asc()).all()


def list_active_packages(db: Session, caller: Caller, now: datetime | None = None) -> list[PurchasedPackage]:
    if caller.is_guest:
        return []
    now = now or datetime.now()
    return db.query(PurchasedPackage).filter(
        PurchasedPackage.user_id == caller.user_id,
        PurchasedPackage.status == PACKAGE_STATUS_ACTIVE,
        PurchasedPackage.expires_at > now,
    ).order_by(PurchasedPackage.expires_at.asc()).all()


def list_service_types(db: Session) -> list[ServiceType]:
    return db.query(ServiceType).filter(ServiceType.is_active.is_(True)).order_by(ServiceType.id.asc()).all()


def get_service_type(db: Session, service_type_id: int) -> ServiceType | None:
    return db.query(ServiceType).filter(ServiceType.id == service_type_id).first()


def booking_row(booking: Booking) -> dict:
    return {
        'id': booking.id,
        'coach_id': booking.coach_id,
        'user_id': booking.user_id,
        'service_type_id': booking.service_type_id,
        'start_time': booking.start_time,
        'end_time': booking.end_time,
        'status': booking.status,
        'payment_method': booking.payment_method,
        'updated_at': booking.updated_at,
    }
