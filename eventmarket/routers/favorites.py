from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.deps import get_current_user
from eventmarket.models import User
from eventmarket.schemas import EventWithVenueResponse, FavoriteResponse
from eventmarket.services import favorites

router = APIRouter(prefix="/events", tags=["favorites"])


@router.get("/favorites", response_model=list[EventWithVenueResponse])
def list_favorite_events(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return favorites.list_favorites(db, current_user)


@router.post("/{event_id}/favorite", response_model=FavoriteResponse)
def add_favorite_event(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Add an event to favorites. Repeating the call is harmless."""
    added = favorites.add_favorite(db, current_user, event_id)
    return FavoriteResponse(
        success=True,
        event_id=event_id,
        is_favorite=True,
        message="Event added to favorites" if added else "Event already in favorites",
    )


@router.delete("/{event_id}/favorite", response_model=FavoriteResponse)
def remove_favorite_event(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = favorites.remove_favorite(db, current_user, event_id)
    return FavoriteResponse(
        success=True,
        event_id=event_id,
        is_favorite=False,
        message="Event removed from favorites" if removed else "Event was not in favorites",
    )
