from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Boolean, Numeric, Table
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from eventmarket.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class HoldStatus(str, enum.Enum):
    HELD = "held"
    CONFIRMED = "confirmed"
    RELEASED = "released"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationType(str, enum.Enum):
    PAYMENT_SUCCESS = "payment_success"
    TICKET_DELIVERY_FAILED = "ticket_delivery_failed"
    GENERAL = "general"


user_favorite_events = Table(
    "user_favorite_events",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("event_id", Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
)

# Denormalized purchase-history index; Ticket.user_id is authoritative.
user_purchase_history = Table(
    "user_purchase_history",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("ticket_id", Integer, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.USER)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    favorite_events = relationship("Event", secondary=user_favorite_events)
    purchased_tickets = relationship("Ticket", secondary=user_purchase_history)
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    events = relationship("Event", back_populates="category")


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    events = relationship("Event", back_populates="venue")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    artist = Column(String(255), nullable=True)
    image_url = Column(String(500), nullable=True)
    event_date = Column(String(20), nullable=False)  # YYYY-MM-DD format
    event_time = Column(String(10), nullable=False)  # HH:MM format, UTC
    price = Column(Numeric(10, 2), nullable=False)  # Base unit price

    # Promo code (one per event)
    promo_code = Column(String(50), nullable=True)
    discount_percentage = Column(Integer, nullable=True)  # null = default 10
    usage_limit = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    usage_count = Column(Integer, nullable=False, default=0)

    # Seats held by open checkouts plus seats sold
    seats_reserved = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    venue = relationship("Venue", back_populates="events")
    category = relationship("Category", back_populates="events")
    organizer = relationship("User")
    tickets = relationship("Ticket", back_populates="event")

    @property
    def has_promo_code(self) -> bool:
        return bool(self.promo_code)


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)  # Snapshot at purchase intent
    amount_paid = Column(Numeric(10, 2), nullable=True)
    checkout_session_id = Column(String(255), unique=True, nullable=True, index=True)
    purchased_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User")
    event = relationship("Event", back_populates="tickets")
    codes = relationship(
        "TicketCode",
        back_populates="ticket",
        order_by="TicketCode.position",
        cascade="all, delete-orphan",
    )
    deliveries = relationship("TicketDelivery", back_populates="ticket", cascade="all, delete-orphan")

    @property
    def ticket_codes(self) -> list[str]:
        return [c.code for c in self.codes]


class TicketCode(Base):
    __tablename__ = "ticket_codes"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    code = Column(String(50), unique=True, nullable=False, index=True)

    ticket = relationship("Ticket", back_populates="codes")


class SeatHold(Base):
    """Seats set aside for an open checkout session."""
    __tablename__ = "seat_holds"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status = Column(Enum(HoldStatus), default=HoldStatus.HELD, index=True)
    checkout_session_id = Column(String(255), unique=True, nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class TicketDelivery(Base):
    """One attempt at rendering and emailing a ticket."""
    __tablename__ = "ticket_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(DeliveryStatus), default=DeliveryStatus.PENDING)
    attempt = Column(Integer, default=1)
    error = Column(Text, nullable=True)
    pdf_path = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    ticket = relationship("Ticket", back_populates="deliveries")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(Enum(NotificationType), default=NotificationType.GENERAL)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="notifications")
