"""Purchased session package model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from coachbook.database import Base

PACKAGE_STATUS_ACTIVE = "active"
PACKAGE_STATUS_EXPIRED = "expired"
PACKAGE_STATUS_DEPLETED = "depleted"


class PurchasedPackage(Base):
    """A bundle of prepaid sessions owned by a member."""
    __tablename__ = "purchased_packages"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    sessions_total = Column(Integer, nullable=False)
    sessions_remaining = Column(Integer, nullable=False)
    purchased_at = Column(DateTime, default=datetime.now)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=PACKAGE_STATUS_ACTIVE)
    stripe_payment_id = Column(String)
