"""Stripe checkout for direct-pay bookings and the webhook that settles payments.

Besides confirming booking checkouts, the webhook records session packages
bought through Stripe and grants the hybrid credits of subscription tiers.
"""

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import stripe
from sqlalchemy.orm import Session

from coachbook.auth.caller import Caller
from coachbook.core import config
from coachbook.errors import RemoteFailure, ValidationError
from coachbook.models.booking import STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_PENDING, Booking
from coachbook.models.purchased_package import PACKAGE_STATUS_ACTIVE, PurchasedPackage
from coachbook.models.service_type import ServiceType
from coachbook.models.user import User
from coachbook.realtime import EVENT_UPDATE, change_feed
from coachbook.services.booking_reader import booking_row

logger = logging.getLogger(__name__)

EVENT_CHECKOUT_COMPLETED = 'checkout.session.completed'
EVENT_CHECKOUT_EXPIRED = 'checkout.session.expired'
EVENT_INVOICE_PAID = 'invoice.payment_succeeded'

MODE_PAYMENT = 'payment'
MODE_SUBSCRIPTION = 'subscription'


class CheckoutSession:
    def __init__(self, session_id: str, url: str) -> None:
        self.session_id = session_id
        self.url = url


def price_for(service_type: ServiceType, caller: Caller) -> Decimal:
    price = service_type.member_price if caller.is_member else service_type.base_price
    return Decimal(price or 0)


def create_checkout_session(booking: Booking, service_type: ServiceType, caller: Caller) -> CheckoutSession:
    stripe.api_key = config.STRIPE_SECRET_KEY
    unit_amount = int((Decimal(booking.amount_paid) * 100).to_integral_value())
    metadata = {'booking_id': str(booking.id), 'customer_email': caller.email}
    if caller.user_id is not None:
        metadata['user_id'] = str(caller.user_id)

    try:
        session = stripe.checkout.Session.create(
            mode='payment',
            customer_email=caller.email,
            line_items=[
                {
                    'price_data': {
                        'currency': config.STRIPE_CURRENCY,
                        'unit_amount': unit_amount,
                        'product_data': {'name': service_type.name},
                    },
                    'quantity': 1,
                }
            ],
            client_reference_id=str(booking.id),
            success_url=config.CHECKOUT_SUCCESS_URL,
            cancel_url=config.CHECKOUT_CANCEL_URL,
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        logger.error('Checkout session creation failed for booking %s: %s', booking.id, exc)
        raise RemoteFailure('Payment processor unavailable. Please try again.') from exc

    logger.info('Checkout session %s created for booking %s', session.id, booking.id)
    return CheckoutSession(session_id=session.id, url=session.url)


def parse_webhook_event(payload: bytes, signature: str | None) -> dict[str, Any]:
    if not config.STRIPE_WEBHOOK_SECRET:
        logger.error('No webhook secret configured')
        raise RemoteFailure('Webhook configuration error.')
    if not signature:
        raise ValidationError('Missing Stripe signature.')

    try:
        stripe.Webhook.construct_event(payload, signature, config.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning('Webhook signature verification failed: %s', exc)
        raise ValidationError('Invalid signature.') from exc

    return json.loads(payload)


def _booking_for_session(db: Session, checkout_session: Mapping[str, Any]) -> Booking | None:
    metadata = checkout_session.get('metadata') or {}
    booking_id = metadata.get('booking_id')
    if not booking_id:
        logger.warning('Checkout session %s carries no booking id', checkout_session.get('id'))
        return None

    try:
        booking_pk = int(booking_id)
    except (TypeError, ValueError):
        logger.warning('Checkout session %s carries malformed booking id %r', checkout_session.get('id'), booking_id)
        return None

    booking = db.query(Booking).filter(Booking.id == booking_pk).first()
    if booking is None:
        logger.warning('Checkout session %s references unknown booking %s', checkout_session.get('id'), booking_id)
        return None

    # A session left behind by a rolled back booking may name a reused id.
    if booking.stripe_session_id != checkout_session.get('id'):
        logger.warning(
            'Checkout session %s does not belong to booking %s (expected %s)',
            checkout_session.get('id'),
            booking.id,
            booking.stripe_session_id,
        )
        return None
    return booking


def _user_for_session(db: Session, checkout_session: Mapping[str, Any]) -> User | None:
    metadata = checkout_session.get('metadata') or {}
    user_id = str(metadata.get('user_id') or '')
    if user_id.isdigit():
        user = db.query(User).filter(User.id == int(user_id)).first()
        if user is not None:
            return user

    email = checkout_session.get('customer_email') or (checkout_session.get('customer_details') or {}).get('email')
    if not email:
        return None
    return db.query(User).filter(User.email == email.strip().lower()).first()


def _line_item_products(session_id: str) -> list[str]:
    stripe.api_key = config.STRIPE_SECRET_KEY
    try:
        line_items = stripe.checkout.Session.list_line_items(session_id)
    except stripe.StripeError as exc:
        logger.error('Could not list line items of checkout %s: %s', session_id, exc)
        raise RemoteFailure('Payment processor unavailable. Please try again.') from exc

    return [item['price']['product'] for item in line_items['data'] if item['price']]


def _subscription_product(subscription_id: str) -> str | None:
    stripe.api_key = config.STRIPE_SECRET_KEY
    try:
        subscription = stripe.Subscription.retrieve(subscription_id)
    except stripe.StripeError as exc:
        logger.error('Could not retrieve subscription %s: %s', subscription_id, exc)
        raise RemoteFailure('Payment processor unavailable. Please try again.') from exc

    items = subscription['items']['data']
    if not items:
        return None
    return items[0]['price']['product']


def confirm_checkout(db: Session, checkout_session: Mapping[str, Any]) -> Booking | None:
    booking = _booking_for_session(db, checkout_session)
    if booking is None:
        return None

    if booking.status == STATUS_CANCELLED:
        logger.warning('Payment completed for cancelled booking %s; leaving it cancelled', booking.id)
        return booking

    booking.status = STATUS_CONFIRMED
    booking.stripe_payment_id = checkout_session.get('payment_intent')
    db.commit()
    db.refresh(booking)
    logger.info('Booking %s confirmed by checkout %s', booking.id, checkout_session.get('id'))

    change_feed.publish('bookings', EVENT_UPDATE, booking_row(booking))
    return booking


def release_expired_checkout(db: Session, checkout_session: Mapping[str, Any]) -> Booking | None:
    """Cancel a booking whose checkout expired unpaid so its slot reopens."""
    booking = _booking_for_session(db, checkout_session)
    if booking is None or booking.status != STATUS_PENDING:
        return booking

    booking.status = STATUS_CANCELLED
    booking.cancelled_at = datetime.now()
    db.commit()
    db.refresh(booking)
    logger.info('Booking %s released after checkout %s expired', booking.id, checkout_session.get('id'))

    change_feed.publish('bookings', EVENT_UPDATE, booking_row(booking))
    return booking


def record_package_purchase(
    db: Session,
    checkout_session: Mapping[str, Any],
    now: datetime,
) -> list[PurchasedPackage]:
    """Create a package for every catalog product paid for in a checkout.

    Stripe delivers webhooks at least once, so a payment intent that already
    produced packages is not recorded again.
    """
    payment_id = checkout_session.get('payment_intent')
    if payment_id and db.query(PurchasedPackage).filter(PurchasedPackage.stripe_payment_id == payment_id).first():
        logger.info('Packages for payment %s already recorded', payment_id)
        return []

    user = _user_for_session(db, checkout_session)
    if user is None:
        logger.warning('Package checkout %s has no matching user', checkout_session.get('id'))
        return []

    packages = []
    for product_id in _line_item_products(checkout_session['id']):
        if product_id not in config.PACKAGE_CATALOG:
            logger.info('Checkout %s line item %s is not a package', checkout_session.get('id'), product_id)
            continue

        sessions, validity_days = config.PACKAGE_CATALOG[product_id]
        package = PurchasedPackage(
            user_id=user.id,
            sessions_total=sessions,
            sessions_remaining=sessions,
            purchased_at=now,
            expires_at=now + timedelta(days=validity_days),
            status=PACKAGE_STATUS_ACTIVE,
            stripe_payment_id=payment_id,
        )
        db.add(package)
        packages.append(package)

    db.commit()
    for package in packages:
        db.refresh(package)
        logger.info('Package %s with %s sessions purchased by user %s', package.id, package.sessions_total, user.id)
    return packages


def start_subscription(db: Session, checkout_session: Mapping[str, Any], now: datetime) -> User | None:
    """Apply the tier of a new subscription and grant its first hybrid credits."""
    user = _user_for_session(db, checkout_session)
    if user is None:
        logger.warning('Subscription checkout %s has no matching user', checkout_session.get('id'))
        return None

    product_id = _subscription_product(checkout_session['subscription'])
    tier = config.PRODUCT_TO_TIER.get(product_id)
    if tier is None:
        logger.warning('Subscription product %s maps to no membership tier', product_id)
        return None

    user.membership_tier = tier
    user.stripe_customer_id = checkout_session.get('customer') or user.stripe_customer_id
    user.hybrid_credits_remaining = config.TIER_HYBRID_CREDITS.get(tier, 0)
    user.hybrid_credits_reset_date = now
    db.commit()
    db.refresh(user)
    logger.info('User %s subscribed to %s with %s hybrid credits', user.id, tier, user.hybrid_credits_remaining)
    return user


def _invoice_subscription(invoice: Mapping[str, Any]) -> str | None:
    if invoice.get('subscription'):
        return invoice['subscription']
    details = (invoice.get('parent') or {}).get('subscription_details') or {}
    return details.get('subscription')


def reset_hybrid_credits(db: Session, invoice: Mapping[str, Any], now: datetime) -> User | None:
    """Refill a subscriber's hybrid credits when a new billing period is paid."""
    if not _invoice_subscription(invoice):
        logger.info('Invoice %s is not for a subscription', invoice.get('id'))
        return None

    customer_id = invoice.get('customer')
    user = db.query(User).filter(User.stripe_customer_id == customer_id).first() if customer_id else None
    if user is None:
        logger.warning('Invoice %s references unknown customer %s', invoice.get('id'), customer_id)
        return None

    last_reset = user.hybrid_credits_reset_date
    if last_reset is not None and now - last_reset <= timedelta(days=config.HYBRID_CREDIT_RESET_MIN_DAYS):
        logger.info('Hybrid credits of user %s were already reset on %s', user.id, last_reset)
        return user

    user.hybrid_credits_remaining = config.TIER_HYBRID_CREDITS.get(user.membership_tier or '', 0)
    user.hybrid_credits_reset_date = now
    db.commit()
    db.refresh(user)
    logger.info('Hybrid credits of user %s reset to %s', user.id, user.hybrid_credits_remaining)
    return user


def handle_webhook_event(db: Session, event: Mapping[str, Any], now: datetime | None = None):
    now = now or datetime.now()
    event_type = event['type']
    stripe_object = event['data']['object']

    if event_type == EVENT_CHECKOUT_COMPLETED:
        metadata = stripe_object.get('metadata') or {}
        if stripe_object.get('mode') == MODE_SUBSCRIPTION:
            return start_subscription(db, stripe_object, now)
        if metadata.get('booking_id'):
            return confirm_checkout(db, stripe_object)
        if stripe_object.get('mode') == MODE_PAYMENT:
            return record_package_purchase(db, stripe_object, now)
        logger.warning('Checkout session %s carries no booking id', stripe_object.get('id'))
        return None
    if event_type == EVENT_CHECKOUT_EXPIRED:
        return release_expired_checkout(db, stripe_object)
    if event_type == EVENT_INVOICE_PAID:
        return reset_hybrid_credits(db, stripe_object, now)

    logger.info('Ignoring webhook event %s', event_type)
    return None
