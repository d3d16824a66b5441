"""Recurring weekly availability of a coach."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Time
from coachbook.database import Base


class AvailabilityWindow(Base):
    """An open period repeated every week on `day_of_week` (0 = Sunday)."""
    __tablename__ = "coach_availability"

    id = Column(Integer, primary_key=True)
    coach_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
