"""Service type model definitions."""

from sqlalchemy import Boolean, Column, Integer, Numeric, String
from coachbook.database import Base


class ServiceType(Base):
    """A bookable kind of session (lesson, class, assessment...)."""
    __tablename__ = "service_types"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String)
    duration_minutes = Column(Integer, nullable=False, default=60)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    member_price = Column(Numeric(10, 2), nullable=False, default=0)
    max_participants = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
