from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from coachbook.auth import jwt_handler
from coachbook.database import get_db
from coachbook.main import app
from coachbook.models.booking import Booking
from coachbook.services import bookings
from coachbook.services.payments import CheckoutSession


class _FrozenDatetime(datetime):
    @classmethod
    def now(cls, tz=None):
        return cls(2026, 1, 1, 8, 0)


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr('coachbook.services.bookings.datetime', _FrozenDatetime)
    monkeypatch.setattr('coachbook.services.slots.datetime', _FrozenDatetime)
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user) -> dict:
    return {'Authorization': f'Bearer {jwt_handler.create_access_token(user.email)}'}


def _payload(lesson, coach, start_hour: int, payment_method: str = 'hybrid_credit') -> dict:
    return {
        'service_type_id': lesson.id,
        'coach_id': coach.id,
        'start_time': f'2026-01-05T{start_hour:02d}:00:00',
        'end_time': f'2026-01-05T{start_hour + 1:02d}:00:00',
        'payment_method': payment_method,
    }


def test_booking_requires_bearer_token(client, coach, lesson) -> None:
    response = client.post('/bookings', json=_payload(lesson, coach, 9))

    assert response.status_code in (401, 403)


def test_booking_rejects_token_for_unknown_user(client, coach, lesson) -> None:
    token = jwt_handler.create_access_token('ghost@example.com')

    response = client.post('/bookings', json=_payload(lesson, coach, 9), headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 401


def test_book_then_conflict_over_http(client, db, coach, member, lesson, monday_morning) -> None:
    member.hybrid_credits_remaining = 2
    db.commit()

    slots_before = client.get('/availability/slots', params={'date': '2026-01-05', 'coach_id': coach.id})
    created = client.post('/bookings', json=_payload(lesson, coach, 9), headers=_auth(member))
    conflict = client.post('/bookings', json=_payload(lesson, coach, 9), headers=_auth(member))
    slots_after = client.get('/availability/slots', params={'date': '2026-01-05', 'coach_id': coach.id})

    assert [slot['start_time'] for slot in slots_before.json()] == [
        '2026-01-05T09:00:00',
        '2026-01-05T10:00:00',
        '2026-01-05T11:00:00',
    ]
    assert created.status_code == 201
    assert created.json()['booking']['status'] == 'confirmed'
    assert conflict.status_code == 409
    assert conflict.json()['detail'] == 'This time slot is no longer available.'
    assert [slot['start_time'] for slot in slots_after.json()] == ['2026-01-05T10:00:00', '2026-01-05T11:00:00']


def test_booking_without_credit_returns_payment_required(client, coach, member, lesson) -> None:
    response = client.post('/bookings', json=_payload(lesson, coach, 9), headers=_auth(member))

    assert response.status_code == 402


def test_guest_direct_pay_returns_checkout_url(client, db, coach, lesson, monkeypatch) -> None:
    monkeypatch.setattr(
        bookings.payments,
        'create_checkout_session',
        lambda booking, service_type, caller: CheckoutSession('cs_test_3', 'https://checkout.stripe.test/cs_test_3'),
    )
    payload = _payload(lesson, coach, 9, payment_method='direct_pay')
    payload['guest_email'] = 'Guest@Example.com'

    response = client.post('/bookings/guest', json=payload)

    assert response.status_code == 201
    assert response.json()['checkout_url'] == 'https://checkout.stripe.test/cs_test_3'
    assert response.json()['booking']['status'] == 'pending'
    assert db.query(Booking).one().guest_email == 'guest@example.com'


def test_my_bookings_and_cancel(client, db, coach, member, lesson) -> None:
    member.hybrid_credits_remaining = 1
    db.commit()
    created = client.post('/bookings', json=_payload(lesson, coach, 9), headers=_auth(member)).json()['booking']

    cancelled = client.post(f"/bookings/{created['id']}/cancel", headers=_auth(member))
    mine = client.get('/bookings/mine', headers=_auth(member))

    assert cancelled.status_code == 200
    assert cancelled.json()['status'] == 'cancelled'
    assert mine.json()['upcoming'] == []
    assert [booking['id'] for booking in mine.json()['past']] == [created['id']]


def test_coach_bookings_require_admin(client, coach, member, admin) -> None:
    forbidden = client.get(f'/bookings/coach/{coach.id}', params={'date': '2026-01-05'}, headers=_auth(member))
    allowed = client.get(f'/bookings/coach/{coach.id}', params={'date': '2026-01-05'}, headers=_auth(admin))

    assert forbidden.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json() == []


def test_admin_manages_windows_over_http(client, coach, admin, member) -> None:
    body = {'coach_id': coach.id, 'day_of_week': 1, 'start_time': '09:00:00', 'end_time': '12:00:00'}

    denied = client.post('/availability/windows', json=body, headers=_auth(member))
    created = client.post('/availability/windows', json=body, headers=_auth(admin))
    listed = client.get('/availability/windows', params={'coach_id': coach.id})
    deleted = client.delete(f"/availability/windows/{created.json()['id']}", headers=_auth(admin))

    assert denied.status_code == 403
    assert created.status_code == 201
    assert [window['start_time'] for window in listed.json()] == ['09:00:00']
    assert deleted.status_code == 204


def test_service_types_and_me(client, member, lesson) -> None:
    service_types = client.get('/bookings/service-types')
    me = client.get('/auth/me', headers=_auth(member))

    assert [service['name'] for service in service_types.json()] == ['Private Lesson']
    assert me.json()['email'] == 'member@example.com'
    assert me.json()['is_member'] is True


def test_booking_accepts_utc_timestamps(client, db, coach, member, lesson) -> None:
    member.hybrid_credits_remaining = 1
    db.commit()
    payload = _payload(lesson, coach, 9)
    payload['start_time'] = '2026-01-05T09:00:00Z'
    payload['end_time'] = '2026-01-05T10:00:00Z'

    response = client.post('/bookings', json=payload, headers=_auth(member))

    expected_start = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert response.status_code == 201
    assert response.json()['booking']['start_time'] == expected_start.isoformat()


def test_booking_of_wrong_length_is_rejected(client, db, coach, member, lesson) -> None:
    member.hybrid_credits_remaining = 1
    db.commit()
    payload = _payload(lesson, coach, 9)
    payload['end_time'] = '2026-01-05T21:00:00'

    response = client.post('/bookings', json=payload, headers=_auth(member))

    assert response.status_code == 400
    assert response.json()['detail'] == 'Private Lesson bookings must last 60 minutes.'
