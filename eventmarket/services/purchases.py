"""Purchase intent: price, discount, seat hold and checkout session, in that order."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from eventmarket.config import get_settings
from eventmarket.errors import CapacityExhaustedError, NotFoundError
from eventmarket.models import Event, User
from eventmarket.services import promo_ledger, reservations
from eventmarket.services.checkout import CheckoutSession, create_checkout_session
from eventmarket.services.discounts import (
    DiscountBreakdown,
    calculate_discount,
    promo_matches,
    promo_percentage,
)
from eventmarket.services.pricing import PriceQuote, quote_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseIntent:
    session: CheckoutSession
    quote: PriceQuote
    breakdown: DiscountBreakdown
    promo_applied: bool
    promo_message: Optional[str]


def load_event(db: Session, event_id: int) -> Event:
    event = (
        db.query(Event)
        .options(joinedload(Event.venue))
        .filter(Event.id == event_id)
        .first()
    )
    if not event:
        raise NotFoundError("Event not found!")
    return event


def start_purchase(
    db: Session,
    event_id: int,
    user: User,
    quantity: int,
    promo_code: Optional[str] = None,
) -> PurchaseIntent:
    """
    Turn a purchase request into a hosted checkout session.

    The price is quoted here, not taken from an earlier preview. Seats and
    the promo use are taken atomically before the session is created and
    given back if creating it fails.
    """
    settings = get_settings()
    event = load_event(db, event_id)

    quote = quote_event(db, event)
    if quote.tickets_sold >= quote.capacity:
        raise CapacityExhaustedError("All tickets sold! Ticket out of stock")

    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.checkout_expiry_minutes)
    hold = reservations.reserve_seats(db, event.id, quantity, expires_at)
    if hold is None:
        remaining = max(quote.capacity - (event.seats_reserved or 0), 0)
        raise CapacityExhaustedError(f"Only {remaining} tickets available")

    promo_applied = False
    promo_message = None
    promo_pct = None
    if promo_code:
        if promo_matches(event, promo_code) and promo_ledger.redeem(db, event.id, promo_code):
            promo_applied = True
            promo_pct = promo_percentage(event)
            promo_message = "Promo code applied"
        elif promo_matches(event, promo_code):
            logger.warning("Promo code for event %s exhausted at purchase time", event.id)
            promo_message = "Promo code has reached its usage limit"
        else:
            promo_message = "Invalid promo code"

    breakdown = calculate_discount(quote.dynamic_price, quantity, promo_pct)

    try:
        session = create_checkout_session(
            event,
            user,
            breakdown,
            promo_code=promo_code if promo_applied else None,
            hold=hold,
        )
    except Exception:
        reservations.release_hold(db, hold_id=hold.id)
        if promo_applied:
            promo_ledger.release(db, event.id)
        raise

    reservations.attach_session(db, hold, session.session_id)

    return PurchaseIntent(
        session=session,
        quote=quote,
        breakdown=breakdown,
        promo_applied=promo_applied,
        promo_message=promo_message,
    )
