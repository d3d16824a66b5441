import os
from datetime import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from coachbook.database import Base  # noqa: E402
from coachbook.models.blocked_time import BlockedTime  # noqa: E402
from coachbook.models.booking import Booking  # noqa: E402
from coachbook.models.coach_availability import AvailabilityWindow  # noqa: E402
from coachbook.models.purchased_package import PurchasedPackage  # noqa: E402
from coachbook.models.service_type import ServiceType  # noqa: E402
from coachbook.models.user import User  # noqa: E402

TABLES = [
    User.__table__,
    ServiceType.__table__,
    PurchasedPackage.__table__,
    AvailabilityWindow.__table__,
    BlockedTime.__table__,
    Booking.__table__,
]



@pytest.fixture(autouse=True)
def skip_schema_migration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('coachbook.database._booking_schema_checked', True)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def coach(db):
    user = User(email='coach@example.com', full_name='Coach', role='coach')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    user = User(email='admin@example.com', role='admin')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def member(db):
    user = User(email='member@example.com', role='member', membership_tier='pro', hybrid_credits_remaining=0)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def lesson(db):
    service_type = ServiceType(
        name='Private Lesson',
        duration_minutes=60,
        base_price=120,
        member_price=90,
        max_participants=1,
        is_active=True,
    )
    db.add(service_type)
    db.commit()
    db.refresh(service_type)
    return service_type


@pytest.fixture
def monday_morning(db, coach):
    window = AvailabilityWindow(coach_id=coach.id, day_of_week=1, start_time=time(9, 0), end_time=time(12, 0))
    db.add(window)
    db.commit()
    db.refresh(window)
    return window
