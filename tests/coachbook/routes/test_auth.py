from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from coachbook.auth import jwt_handler
from coachbook.auth.caller import Caller
from coachbook.auth.dependencies import get_current_caller, require_admin
from coachbook.core import config


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip() -> None:
    token = jwt_handler.create_access_token('member@example.com', expires_minutes=5)

    assert jwt_handler.decode_access_token(token)['sub'] == 'member@example.com'


def test_get_current_caller_resolves_user(db, member) -> None:
    caller = get_current_caller(_credentials(jwt_handler.create_access_token(member.email)), db)

    assert caller.user_id == member.id
    assert caller.is_member is True
    assert caller.is_admin is False


def test_get_current_caller_rejects_garbage_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_caller(_credentials('not-a-token'), db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_require_admin_rejects_members() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_admin(Caller(user_id=1, email='member@example.com', role='member'))

    assert exception_info.value.status_code == 403


def test_starter_tier_and_guest_are_not_members() -> None:
    assert Caller(user_id=1, email='a@example.com', membership_tier='starter').is_member is False
    assert Caller(user_id=1, email='a@example.com', membership_tier=None).is_member is False
    assert Caller.guest(' Guest@Example.com ').email == 'guest@example.com'
    assert Caller.guest('guest@example.com').is_guest is True


def test_caller_email_is_normalized_from_token() -> None:
    token = jwt_handler.create_access_token(' Member@Example.com ')

    assert jwt_handler.caller_email(token) == 'member@example.com'


def test_token_without_subject_is_rejected(db) -> None:
    token = jwt.encode({'exp': datetime.now(timezone.utc) + timedelta(minutes=5)}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_caller(_credentials(token), db)

    assert exception_info.value.status_code == 401
