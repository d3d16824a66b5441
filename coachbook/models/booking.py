"""Booking model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from coachbook.database import Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

PAYMENT_HYBRID_CREDIT = "hybrid_credit"
PAYMENT_PACKAGE = "package"
PAYMENT_DIRECT_PAY = "direct_pay"
PAYMENT_METHODS = (PAYMENT_HYBRID_CREDIT, PAYMENT_PACKAGE, PAYMENT_DIRECT_PAY)


class Booking(Base):
    """Represents a reserved session with a coach."""
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_coach_time_range", "coach_id", "start_time", "end_time"),
        Index(
            "uq_bookings_coach_start_active",
            "coach_id",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    coach_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    guest_email = Column(String)
    service_type_id = Column(Integer, ForeignKey("service_types.id"))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    payment_method = Column(String, nullable=False)
    purchased_package_id = Column(Integer, ForeignKey("purchased_packages.id"))
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    stripe_session_id = Column(String)
    stripe_payment_id = Column(String)
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    cancelled_at = Column(DateTime)
