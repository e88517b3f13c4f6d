"""
Promo code usage ledger.

Each event carries at most one promo code with a usage counter. A use is
consumed by a single conditional UPDATE so that concurrent buyers can never
push ``usage_count`` past ``usage_limit``: whoever's statement matches the
row first wins the slot, everyone else gets zero affected rows.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from eventmarket.config import get_settings
from eventmarket.models import Event
from eventmarket.services.discounts import promo_available, promo_matches, promo_percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromoValidation:
    valid: bool
    message: str
    discount_percentage: Optional[int] = None


def redeem(db: Session, event_id: int, code: str) -> bool:
    """Consume one use of an event's promo code. True if a use was recorded."""
    if not code or not code.strip():
        return False

    updated = (
        db.query(Event)
        .filter(
            Event.id == event_id,
            Event.promo_code.isnot(None),
            func.lower(Event.promo_code) == code.strip().lower(),
            or_(Event.usage_limit == 0, Event.usage_count < Event.usage_limit),
        )
        .update({Event.usage_count: Event.usage_count + 1}, synchronize_session=False)
    )
    db.commit()

    if updated == 1:
        logger.info("Promo code redeemed for event %s", event_id)
        return True
    return False


def release(db: Session, event_id: int) -> None:
    """Give back a use consumed by a purchase that never reached checkout."""
    (
        db.query(Event)
        .filter(Event.id == event_id, Event.usage_count > 0)
        .update({Event.usage_count: Event.usage_count - 1}, synchronize_session=False)
    )
    db.commit()
    logger.info("Promo code use released for event %s", event_id)


def validate(db: Session, event: Event, code: str) -> PromoValidation:
    """Check a code against an event; consumes a use when so configured."""
    if not promo_matches(event, code):
        return PromoValidation(valid=False, message="Invalid promo code")

    exhausted = PromoValidation(valid=False, message="Promo code has reached its usage limit")
    if not promo_available(event):
        return exhausted

    if get_settings().promo_validate_consumes and not redeem(db, event.id, code):
        return exhausted

    return PromoValidation(
        valid=True,
        message="Promo code applied successfully",
        discount_percentage=promo_percentage(event),
    )


def preview(event: Event, code: Optional[str]) -> PromoValidation:
    """Same checks as ``validate`` without touching the counter."""
    if not promo_matches(event, code):
        return PromoValidation(valid=False, message="Invalid promo code")
    if not promo_available(event):
        return PromoValidation(valid=False, message="Promo code has reached its usage limit")
    return PromoValidation(
        valid=True,
        message="Promo code is valid",
        discount_percentage=promo_percentage(event),
    )
