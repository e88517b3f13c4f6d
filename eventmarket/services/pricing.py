"""
Dynamic ticket pricing.

The unit price of an event moves with demand (share of venue capacity
already sold) and with how close the event is. It is never stored: every
read recomputes it, and the price charged is the one computed when the
purchase intent is created.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from eventmarket.models import Event, Ticket

CENT = Decimal("0.01")
MAX_MULTIPLIER = Decimal("2")

# (share sold strictly above, multiplier); first match wins
DEMAND_TIERS = [
    (Decimal("0.75"), Decimal("1.50")),
    (Decimal("0.50"), Decimal("1.30")),
    (Decimal("0.25"), Decimal("1.15")),
]

# (whole days strictly below, multiplier); first match wins
SURGE_WINDOWS = [
    (3, Decimal("1.25")),
    (7, Decimal("1.15")),
]


@dataclass(frozen=True)
class PriceQuote:
    base_price: Decimal
    dynamic_price: Decimal
    tickets_sold: int
    capacity: int
    percent_sold: Decimal  # 0-100, 2 dp
    days_until_event: int


def demand_multiplier(share_sold: Decimal) -> Decimal:
    for threshold, multiplier in DEMAND_TIERS:
        if share_sold > threshold:
            return multiplier
    return Decimal("1")


def surge_multiplier(days_until_event: int) -> Decimal:
    for window, multiplier in SURGE_WINDOWS:
        if days_until_event < window:
            return multiplier
    return Decimal("1")


def days_until(event_start: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until the event starts, clamped at 0 for past events."""
    now = now or datetime.now(timezone.utc)
    seconds = (event_start - now).total_seconds()
    return math.floor(max(seconds / 86400, 0))


def calculate_dynamic_price(
    base_price,
    capacity: int,
    tickets_sold: int,
    event_start: datetime,
    now: Optional[datetime] = None,
) -> PriceQuote:
    """Compute the demand- and time-adjusted unit price, capped at 2x base."""
    base = Decimal(str(base_price))
    seats = capacity if capacity and capacity > 0 else 1
    share_sold = Decimal(tickets_sold) / Decimal(seats)
    days = days_until(event_start, now)

    price = base * demand_multiplier(share_sold) * surge_multiplier(days)
    price = min(price, base * MAX_MULTIPLIER)

    return PriceQuote(
        base_price=base,
        dynamic_price=price.quantize(CENT, rounding=ROUND_HALF_UP),
        tickets_sold=tickets_sold,
        capacity=capacity or 0,
        percent_sold=(share_sold * 100).quantize(CENT, rounding=ROUND_HALF_UP),
        days_until_event=days,
    )


def event_start(event: Event) -> datetime:
    """Parse an event's stored date and time as a UTC datetime."""
    start = datetime.strptime(f"{event.event_date} {event.event_time}", "%Y-%m-%d %H:%M")
    return start.replace(tzinfo=timezone.utc)


def tickets_sold(db: Session, event_id: int) -> int:
    """Sum of seats across every ticket issued for an event."""
    total = (
        db.query(func.coalesce(func.sum(Ticket.quantity), 0))
        .filter(Ticket.event_id == event_id)
        .scalar()
    )
    return int(total or 0)


def quote_event(db: Session, event: Event, now: Optional[datetime] = None) -> PriceQuote:
    capacity = event.venue.capacity if event.venue else 0
    return calculate_dynamic_price(
        base_price=event.price,
        capacity=capacity,
        tickets_sold=tickets_sold(db, event.id),
        event_start=event_start(event),
        now=now,
    )
