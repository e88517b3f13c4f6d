"""
Seat holds for open checkout sessions.

``Event.seats_reserved`` counts seats sold plus seats held by checkouts that
have not finished yet. Taking seats is one conditional UPDATE against the
venue capacity, so two buyers racing for the last seats cannot both win.
A hold is released when its checkout expires or fails, and confirmed when
the ticket is issued.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from eventmarket.config import get_settings
from eventmarket.models import Event, Venue, SeatHold, HoldStatus

logger = logging.getLogger(__name__)


def reserve_seats(db: Session, event_id: int, quantity: int, expires_at: datetime) -> Optional[SeatHold]:
    """Hold ``quantity`` seats if the venue still has room. None when full."""
    capacity = (
        select(Venue.capacity)
        .where(Venue.id == Event.venue_id)
        .correlate(Event)
        .scalar_subquery()
    )
    updated = (
        db.query(Event)
        .filter(Event.id == event_id, Event.seats_reserved + quantity <= capacity)
        .update({Event.seats_reserved: Event.seats_reserved + quantity}, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        return None

    hold = SeatHold(
        event_id=event_id,
        quantity=quantity,
        status=HoldStatus.HELD,
        expires_at=expires_at,
    )
    db.add(hold)
    db.commit()
    db.refresh(hold)
    logger.info("Held %d seat(s) for event %s (hold %s)", quantity, event_id, hold.id)
    return hold


def attach_session(db: Session, hold: SeatHold, session_id: str) -> None:
    hold.checkout_session_id = session_id
    db.commit()


def _find_hold(db: Session, hold_id: Optional[int], session_id: Optional[str]) -> Optional[SeatHold]:
    query = db.query(SeatHold)
    if hold_id is not None:
        return query.filter(SeatHold.id == hold_id).first()
    if session_id:
        return query.filter(SeatHold.checkout_session_id == session_id).first()
    return None


def release_hold(db: Session, hold_id: Optional[int] = None, session_id: Optional[str] = None) -> bool:
    """Return a held reservation's seats. True only for the call that released it."""
    hold = _find_hold(db, hold_id, session_id)
    if not hold:
        return False

    flipped = (
        db.query(SeatHold)
        .filter(SeatHold.id == hold.id, SeatHold.status == HoldStatus.HELD)
        .update({SeatHold.status: HoldStatus.RELEASED}, synchronize_session=False)
    )
    if flipped != 1:
        db.rollback()
        return False

    (
        db.query(Event)
        .filter(Event.id == hold.event_id)
        .update({Event.seats_reserved: Event.seats_reserved - hold.quantity}, synchronize_session=False)
    )
    db.commit()
    logger.info("Released hold %s (%d seat(s)) for event %s", hold.id, hold.quantity, hold.event_id)
    return True


def confirm_hold(db: Session, hold_id: Optional[int] = None, session_id: Optional[str] = None) -> None:
    """
    Turn a hold into sold seats. Does not commit; runs inside issuance.

    If the sweeper already released the hold the payment has still been
    taken, so the seats are counted again.
    """
    hold = _find_hold(db, hold_id, session_id)
    if not hold or hold.status == HoldStatus.CONFIRMED:
        return

    if hold.status == HoldStatus.RELEASED:
        logger.warning("Hold %s was released before payment confirmed; recounting seats", hold.id)
        (
            db.query(Event)
            .filter(Event.id == hold.event_id)
            .update({Event.seats_reserved: Event.seats_reserved + hold.quantity}, synchronize_session=False)
        )
    hold.status = HoldStatus.CONFIRMED


def return_seats(db: Session, event_id: int, quantity: int) -> None:
    """Give sold seats back to an event (owner deleted their ticket). Does not commit."""
    (
        db.query(Event)
        .filter(Event.id == event_id, Event.seats_reserved >= quantity)
        .update({Event.seats_reserved: Event.seats_reserved - quantity}, synchronize_session=False)
    )


def release_expired_holds(db: Session, now: Optional[datetime] = None) -> int:
    """Release every hold whose checkout expired more than the grace period ago."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.hold_grace_minutes)

    expired_ids = [
        hold_id
        for (hold_id,) in db.query(SeatHold.id)
        .filter(SeatHold.status == HoldStatus.HELD, SeatHold.expires_at < cutoff)
        .all()
    ]
    released = sum(1 for hold_id in expired_ids if release_hold(db, hold_id=hold_id))
    if released:
        logger.info("Released %d expired seat hold(s)", released)
    return released
