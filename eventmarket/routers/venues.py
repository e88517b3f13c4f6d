from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.models import Venue, Event
from eventmarket.schemas import (
    VenueCreate,
    VenueUpdate,
    VenueResponse,
    EventResponse,
)

router = APIRouter(prefix="/venues", tags=["venues"])


@router.get("", response_model=list[VenueResponse])
def list_venues(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """List venues."""
    venues = db.query(Venue).order_by(Venue.id).offset(offset).limit(limit).all()
    return venues


@router.get("/{venue_id}", response_model=VenueResponse)
def get_venue(venue_id: int, db: Session = Depends(get_db)):
    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue:
        raise HTTPException(status_code=404, detail="Venue not found")
    return venue


@router.post("", response_model=VenueResponse, status_code=201)
def create_venue(venue: VenueCreate, db: Session = Depends(get_db)):
    """Create a new venue."""
    db_venue = Venue(**venue.model_dump())
    db.add(db_venue)
    db.commit()
    db.refresh(db_venue)
    return db_venue


@router.put("/{venue_id}", response_model=VenueResponse)
def update_venue(venue_id: int, venue: VenueUpdate, db: Session = Depends(get_db)):
    """Update a venue. Lowering capacity never cancels issued tickets."""
    db_venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not db_venue:
        raise HTTPException(status_code=404, detail="Venue not found")

    update_data = venue.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("name", "address", "capacity"):
            continue
        setattr(db_venue, field, value)

    db.commit()
    db.refresh(db_venue)
    return db_venue


@router.delete("/{venue_id}", status_code=204)
def delete_venue(venue_id: int, db: Session = Depends(get_db)):
    """Delete a venue that hosts no events."""
    db_venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not db_venue:
        raise HTTPException(status_code=404, detail="Venue not found")

    if db.query(Event.id).filter(Event.venue_id == venue_id).first():
        raise HTTPException(status_code=400, detail="Venue still has events")

    db.delete(db_venue)
    db.commit()
    return None


@router.get("/{venue_id}/events", response_model=list[EventResponse])
def list_venue_events(venue_id: int, db: Session = Depends(get_db)):
    """List events at a specific venue."""
    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue:
        raise HTTPException(status_code=404, detail="Venue not found")

    events = db.query(Event).filter(Event.venue_id == venue_id).all()
    return events
