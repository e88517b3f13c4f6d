"""
Stripe Checkout adapter.

No order row exists between session creation and payment confirmation:
the session metadata carries everything issuance needs, and the session id
is the only handle the client has to bring back.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe

from eventmarket.config import get_settings
from eventmarket.errors import NotFoundError, PaymentProviderError, PaymentProviderNotConfigured
from eventmarket.models import Event, User, SeatHold
from eventmarket.services.discounts import DiscountBreakdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


def _configure_stripe():
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise PaymentProviderNotConfigured()
    stripe.api_key = settings.stripe_secret_key
    return settings


def success_url() -> str:
    return f"{get_settings().client_url}/event-payment-success?session_id={{CHECKOUT_SESSION_ID}}"


def cancel_url() -> str:
    return f"{get_settings().client_url}/event-payment-failure"


def build_line_item(event: Event, breakdown: DiscountBreakdown) -> dict:
    settings = get_settings()
    quantity = breakdown.quantity
    description = f"{quantity} ticket{'s' if quantity > 1 else ''} for {event.title}"
    if breakdown.description:
        description += f"\n{breakdown.description}"

    image_url = None
    if event.image_url:
        image_url = event.image_url if event.image_url.startswith("http") else f"{settings.base_url}{event.image_url}"

    return {
        "price_data": {
            "currency": settings.currency,
            "unit_amount": breakdown.unit_amount_cents,
            "product_data": {
                "name": f"Event Ticket: {event.title}",
                "description": description,
                "images": [image_url] if image_url else [],
            },
        },
        "quantity": quantity,
    }


def build_metadata(
    event: Event,
    user: User,
    breakdown: DiscountBreakdown,
    promo_code: Optional[str],
    hold: Optional[SeatHold] = None,
) -> dict:
    """Everything needed to mint the ticket from the session alone. Stripe metadata is str-only."""
    return {
        "event_id": str(event.id),
        "user_id": str(user.id),
        "quantity": str(breakdown.quantity),
        "discount_type": breakdown.discount_type,
        "discount_percentage": str(breakdown.discount_percentage),
        "group_discount_pct": str(breakdown.group_discount_pct),
        "promo_discount_pct": str(breakdown.promo_discount_pct),
        "promo_code": promo_code or "",
        "unit_price": str(breakdown.base_price),
        "final_unit_price": str(breakdown.final_unit_price),
        "hold_id": str(hold.id) if hold else "",
    }


def create_checkout_session(
    event: Event,
    user: User,
    breakdown: DiscountBreakdown,
    promo_code: Optional[str] = None,
    hold: Optional[SeatHold] = None,
) -> CheckoutSession:
    """Create a hosted checkout session for one purchase intent."""
    settings = _configure_stripe()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.checkout_expiry_minutes)

    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            mode="payment",
            line_items=[build_line_item(event, breakdown)],
            success_url=success_url(),
            cancel_url=cancel_url(),
            customer_email=user.email,
            expires_at=int(expires_at.timestamp()),
            metadata=build_metadata(event, user, breakdown, promo_code, hold),
        )
    except stripe.StripeError as e:
        logger.error("Stripe session creation failed for event %s: %s", event.id, e)
        raise PaymentProviderError(str(e))

    logger.info("Created checkout session %s for event %s", session.id, event.id)
    return CheckoutSession(session_id=session.id, url=session.url)


def retrieve_checkout_session(session_id: str):
    """Fetch a session from Stripe; the provider is the source of truth for payment state."""
    _configure_stripe()
    try:
        return stripe.checkout.Session.retrieve(session_id)
    except stripe.InvalidRequestError:
        raise NotFoundError("Checkout session not found")
    except stripe.StripeError as e:
        logger.error("Stripe session lookup failed for %s: %s", session_id, e)
        raise PaymentProviderError(str(e))


def session_metadata(session) -> dict:
    """A session's metadata as a plain dict. Stripe returns a StripeObject, which is not a dict."""
    metadata = getattr(session, "metadata", None)
    if metadata is None:
        return {}
    if hasattr(metadata, "to_dict"):
        return metadata.to_dict()
    return dict(metadata)
