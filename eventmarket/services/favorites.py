import logging

from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from eventmarket.errors import NotFoundError
from eventmarket.models import Event, User, user_favorite_events

logger = logging.getLogger(__name__)


def _is_favorite(db: Session, user_id: int, event_id: int) -> bool:
    return db.query(user_favorite_events).filter(
        user_favorite_events.c.user_id == user_id,
        user_favorite_events.c.event_id == event_id,
    ).first() is not None


def add_favorite(db: Session, user: User, event_id: int) -> bool:
    """Add an event to the user's favorites. Adding twice is a no-op.

    Returns True if a new favorite row was written.
    """
    if not db.query(Event.id).filter(Event.id == event_id).first():
        raise NotFoundError("Event not found")

    if _is_favorite(db, user.id, event_id):
        return False

    try:
        db.execute(insert(user_favorite_events).values(user_id=user.id, event_id=event_id))
        db.commit()
    except IntegrityError:
        # Concurrent add of the same pair
        db.rollback()
        return False

    logger.info("User %s favorited event %s", user.id, event_id)
    return True


def remove_favorite(db: Session, user: User, event_id: int) -> bool:
    """Remove an event from the user's favorites. Returns True if a row was removed."""
    result = db.execute(
        delete(user_favorite_events).where(
            user_favorite_events.c.user_id == user.id,
            user_favorite_events.c.event_id == event_id,
        )
    )
    db.commit()
    return result.rowcount > 0


def list_favorites(db: Session, user: User) -> list[Event]:
    return (
        db.query(Event)
        .options(joinedload(Event.venue), joinedload(Event.category))
        .join(user_favorite_events, user_favorite_events.c.event_id == Event.id)
        .filter(user_favorite_events.c.user_id == user.id)
        .order_by(Event.event_date, Event.event_time)
        .all()
    )
