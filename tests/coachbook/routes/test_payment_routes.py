import inspect
from datetime import datetime

import pytest
import stripe
from fastapi.testclient import TestClient

from coachbook.database import get_db
from coachbook.errors import ValidationError
from coachbook.main import app
from coachbook.models.booking import Booking
from coachbook.models.purchased_package import PurchasedPackage
from coachbook.routes.payment_routes import apply_webhook
from coachbook.services import payments


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_webhook_rejects_invalid_signature(client, monkeypatch) -> None:
    def reject(payload, signature):
        raise ValidationError('Invalid signature.')

    monkeypatch.setattr(payments, 'parse_webhook_event', reject)

    response = client.post('/payments/webhook', content=b'{}', headers={'stripe-signature': 'bad'})

    assert response.status_code == 400
    assert response.json()['detail'] == 'Invalid signature.'


def test_webhook_confirms_pending_booking(client, db, coach, monkeypatch) -> None:
    booking = Booking(
        coach_id=coach.id,
        guest_email='guest@example.com',
        start_time=datetime(2026, 1, 5, 9, 0),
        end_time=datetime(2026, 1, 5, 10, 0),
        status='pending',
        payment_method='direct_pay',
        amount_paid=120,
        stripe_session_id='cs_1',
    )
    db.add(booking)
    db.commit()
    event = {
        'id': 'evt_1',
        'type': 'checkout.session.completed',
        'data': {'object': {'id': 'cs_1', 'payment_intent': 'pi_1', 'metadata': {'booking_id': str(booking.id)}}},
    }
    monkeypatch.setattr(payments, 'parse_webhook_event', lambda payload, signature: event)

    response = client.post('/payments/webhook', content=b'{}', headers={'stripe-signature': 'good'})

    db.refresh(booking)
    assert response.status_code == 200
    assert response.json() == {'status': 'success', 'event_type': 'checkout.session.completed', 'booking_id': booking.id}
    assert booking.status == 'confirmed'


def test_webhook_reports_payment_processor_outage(client, db, member, monkeypatch) -> None:
    event = {
        'id': 'evt_2',
        'type': 'checkout.session.completed',
        'data': {'object': {'id': 'cs_pkg', 'mode': 'payment', 'payment_intent': 'pi_2', 'metadata': {'user_id': str(member.id)}}},
    }
    monkeypatch.setattr(payments, 'parse_webhook_event', lambda payload, signature: event)

    def failing_list(session_id):
        raise stripe.APIConnectionError('network down')

    monkeypatch.setattr(stripe.checkout.Session, 'list_line_items', failing_list)

    response = client.post('/payments/webhook', content=b'{}', headers={'stripe-signature': 'good'})

    assert response.status_code == 503


def test_webhook_records_package_purchase(client, db, member, monkeypatch) -> None:
    event = {
        'id': 'evt_3',
        'type': 'checkout.session.completed',
        'data': {'object': {'id': 'cs_pkg', 'mode': 'payment', 'payment_intent': 'pi_3', 'metadata': {'user_id': str(member.id)}}},
    }
    monkeypatch.setattr(payments, 'parse_webhook_event', lambda payload, signature: event)
    monkeypatch.setattr(
        stripe.checkout.Session,
        'list_line_items',
        lambda session_id: {'data': [{'price': {'product': 'prod_Tp2pUYu4EmGjeu'}}]},
    )

    response = client.post('/payments/webhook', content=b'{}', headers={'stripe-signature': 'good'})

    assert response.status_code == 200
    assert response.json()['booking_id'] is None
    assert db.query(PurchasedPackage).one().sessions_total == 12


def test_apply_webhook_runs_synchronously_with_session(db, monkeypatch) -> None:
    event = {'id': 'evt_4', 'type': 'customer.subscription.updated', 'data': {'object': {}}}
    monkeypatch.setattr(payments, 'parse_webhook_event', lambda payload, signature: event)

    assert not inspect.iscoroutinefunction(apply_webhook)
    assert apply_webhook(db, b'{}', 'good') == {
        'status': 'success',
        'event_type': 'customer.subscription.updated',
        'booking_id': None,
    }
