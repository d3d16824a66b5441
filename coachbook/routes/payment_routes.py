import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachbook.database import get_db
from coachbook.errors import DomainError, RemoteFailure
from coachbook.models.booking import Booking
from coachbook.routes.availability_routes import DATABASE_UNAVAILABLE, ensure_database_ready
from coachbook.services import payments

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)


def apply_webhook(db: Session, payload: bytes, signature: str | None) -> dict:
    try:
        event = payments.parse_webhook_event(payload, signature)
    except DomainError as exc:
        raise exc.to_http_exception() from exc

    ensure_database_ready()

    try:
        result = payments.handle_webhook_event(db, event)
    except DomainError as exc:
        db.rollback()
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Webhook %s could not be applied', event.get('id'))
        raise RemoteFailure(DATABASE_UNAVAILABLE).to_http_exception() from exc

    return {
        'status': 'success',
        'event_type': event.get('type', 'unknown'),
        'booking_id': result.id if isinstance(result, Booking) else None,
    }


@router.post('/webhook')
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()
    signature = request.headers.get('stripe-signature')
    # Database and Stripe calls are blocking; keep them off the event loop.
    return await run_in_threadpool(apply_webhook, db, payload, signature)
