"""Bearer tokens whose subject is the caller's email address."""

from datetime import datetime, timedelta, timezone

import jwt

from coachbook.core import config


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_access_token(email: str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    claims = {"sub": _normalize_email(email), "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )


def caller_email(token: str) -> str:
    """Email named by a valid token; raises ``jwt.InvalidTokenError`` otherwise."""
    subject = decode_access_token(token)["sub"]
    if not isinstance(subject, str) or not subject.strip():
        raise jwt.InvalidTokenError("Token subject is not an email address.")
    return _normalize_email(subject)
