"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from coachbook.database import Base


class User(Base):
    """Represents a member, coach or admin account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String, default="member")  # member/coach/admin
    membership_tier = Column(String, default="starter")
    hybrid_credits_remaining = Column(Integer, default=0, nullable=False)
    hybrid_credits_reset_date = Column(DateTime)
    stripe_customer_id = Column(String, index=True)
