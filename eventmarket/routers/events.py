import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete
from sqlalchemy.orm import Session, joinedload

from eventmarket.database import get_db
from eventmarket.models import Event, Venue, Category, Ticket, SeatHold, user_favorite_events
from eventmarket.schemas import (
    EventCreate,
    EventUpdate,
    EventResponse,
    EventDetailResponse,
    EventWithVenueResponse,
    PriceQuoteResponse,
    PricingInfo,
    PromoInfo,
)
from eventmarket.services import promo_ledger
from eventmarket.services.discounts import calculate_discount
from eventmarket.services.pricing import quote_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _get_event_or_404(db: Session, event_id: int) -> Event:
    event = (
        db.query(Event)
        .options(joinedload(Event.venue), joinedload(Event.category))
        .filter(Event.id == event_id)
        .first()
    )
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _check_references(db: Session, venue_id: Optional[int], category_id: Optional[int]):
    if venue_id is not None and not db.query(Venue.id).filter(Venue.id == venue_id).first():
        raise HTTPException(status_code=404, detail="Venue not found")
    if category_id is not None and not db.query(Category.id).filter(Category.id == category_id).first():
        raise HTTPException(status_code=404, detail="Category not found")


@router.get("", response_model=list[EventWithVenueResponse])
def list_events(
    category_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """List events with venue information. Optionally filter by category."""
    query = db.query(Event).options(joinedload(Event.venue), joinedload(Event.category))
    if category_id is not None:
        query = query.filter(Event.category_id == category_id)
    events = query.order_by(Event.event_date, Event.event_time).offset(offset).limit(limit).all()
    return events


@router.get("/{event_id}", response_model=EventDetailResponse)
def get_event(event_id: int, db: Session = Depends(get_db)):
    """Get event with venue and its current dynamic price."""
    event = _get_event_or_404(db, event_id)
    quote = quote_event(db, event)

    detail = EventWithVenueResponse.model_validate(event).model_dump()
    return EventDetailResponse(
        **detail,
        dynamic_price=quote.dynamic_price,
        tickets_sold=quote.tickets_sold,
        percent_sold=quote.percent_sold,
        days_until_event=quote.days_until_event,
    )


@router.get("/{event_id}/price", response_model=PriceQuoteResponse)
def preview_price(
    event_id: int,
    quantity: int = Query(default=1, ge=1),
    promo_code: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Price a prospective order. Never consumes a promo code use."""
    event = _get_event_or_404(db, event_id)
    quote = quote_event(db, event)

    promo = None
    promo_pct = None
    if promo_code:
        check = promo_ledger.preview(event, promo_code)
        promo = PromoInfo(
            code=promo_code,
            valid=check.valid,
            message=check.message,
            discount_percentage=check.discount_percentage,
        )
        if check.valid:
            promo_pct = check.discount_percentage

    breakdown = calculate_discount(quote.dynamic_price, quantity, promo_pct)
    return PriceQuoteResponse(
        event_id=event.id,
        base_price=quote.base_price,
        dynamic_price=quote.dynamic_price,
        tickets_sold=quote.tickets_sold,
        capacity=quote.capacity,
        percent_sold=quote.percent_sold,
        days_until_event=quote.days_until_event,
        pricing=PricingInfo.from_breakdown(breakdown),
        promo=promo,
    )


@router.post("", response_model=EventResponse, status_code=201)
def create_event(event: EventCreate, db: Session = Depends(get_db)):
    """Create a new event."""
    _check_references(db, event.venue_id, event.category_id)

    db_event = Event(**event.model_dump())
    db.add(db_event)
    db.commit()
    db.refresh(db_event)

    logger.info("Event %s created: %s", db_event.id, db_event.title)
    return db_event


@router.put("/{event_id}", response_model=EventResponse)
def update_event(event_id: int, event: EventUpdate, db: Session = Depends(get_db)):
    """Update an event, including its promo code settings."""
    db_event = db.query(Event).filter(Event.id == event_id).first()
    if not db_event:
        raise HTTPException(status_code=404, detail="Event not found")

    update_data = event.model_dump(exclude_unset=True)
    _check_references(db, update_data.get("venue_id"), update_data.get("category_id"))

    if "promo_code" in update_data and update_data["promo_code"] == "":
        update_data["promo_code"] = None
    if "usage_limit" in update_data and update_data["usage_limit"] is None:
        update_data["usage_limit"] = 0

    for field, value in update_data.items():
        if value is None and field in ("title", "event_date", "event_time", "venue_id", "price"):
            continue
        setattr(db_event, field, value)

    db.commit()
    db.refresh(db_event)
    return db_event


@router.delete("/{event_id}", status_code=204)
def delete_event(event_id: int, db: Session = Depends(get_db)):
    """Delete an event. Issued tickets are kept and lose their event link."""
    db_event = db.query(Event).filter(Event.id == event_id).first()
    if not db_event:
        raise HTTPException(status_code=404, detail="Event not found")

    db.query(Ticket).filter(Ticket.event_id == event_id).update(
        {Ticket.event_id: None}, synchronize_session=False
    )
    db.query(SeatHold).filter(SeatHold.event_id == event_id).delete(synchronize_session=False)
    db.execute(delete(user_favorite_events).where(user_favorite_events.c.event_id == event_id))

    db.delete(db_event)
    db.commit()

    logger.info("Event %s deleted", event_id)
    return None
