"""Explicit identity handed to every booking operation."""

from pydantic import BaseModel, ConfigDict

from coachbook.core import config
from coachbook.models.user import User

ROLE_ADMIN = "admin"


class Caller(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int | None = None
    email: str
    role: str = "member"
    membership_tier: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_member(self) -> bool:
        return (self.membership_tier or "").strip().lower() not in config.NON_MEMBER_TIERS

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role or "member",
            membership_tier=user.membership_tier,
        )

    @classmethod
    def guest(cls, email: str) -> "Caller":
        return cls(email=email.strip().lower(), role="guest")
