from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from coachbook.core import config


connect_args = {'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(config.DATABASE_URL, echo=config.DEBUG_SQL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    """Bring users and bookings tables created by an older release up to date."""
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'users' in inspector.get_table_names():
            user_columns = {column['name'] for column in inspector.get_columns('users')}
            with engine.begin() as connection:
                if 'hybrid_credits_reset_date' not in user_columns:
                    connection.execute(text('ALTER TABLE users ADD COLUMN hybrid_credits_reset_date TIMESTAMP'))
                if 'stripe_customer_id' not in user_columns:
                    connection.execute(text('ALTER TABLE users ADD COLUMN stripe_customer_id VARCHAR'))

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('guest_email', 'ALTER TABLE bookings ADD COLUMN guest_email VARCHAR'),
            ('stripe_session_id', 'ALTER TABLE bookings ADD COLUMN stripe_session_id VARCHAR'),
            ('stripe_payment_id', 'ALTER TABLE bookings ADD COLUMN stripe_payment_id VARCHAR'),
            ('cancelled_at', 'ALTER TABLE bookings ADD COLUMN cancelled_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_coach_time_range ON bookings(coach_id, start_time, end_time)')
            )
            # At most one live booking per coach and start time.
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_coach_start_active '
                    "ON bookings(coach_id, start_time) WHERE status != 'cancelled'"
                )
            )

        _booking_schema_checked = True
