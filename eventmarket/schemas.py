from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional
from eventmarket.models import UserRole, NotificationType


# ============== User Schemas ==============

class UserCreate(BaseModel):
    email: EmailStr
    full_name: str


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: UserRole = UserRole.USER
    created_at: datetime

    class Config:
        from_attributes = True


# ============== Venue Schemas ==============

class VenueBase(BaseModel):
    name: str
    address: str
    capacity: int = Field(0, ge=0)
    description: Optional[str] = None


class VenueCreate(VenueBase):
    pass


class VenueUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None


class VenueResponse(VenueBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


# ============== Category Schemas ==============

class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    image_url: Optional[str] = None


class CategoryCreate(CategoryBase):
    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    image_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class CategoryResponse(CategoryBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class CategorySummaryResponse(CategoryResponse):
    event_count: int = 0


# ============== Event Schemas ==============

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^\d{2}:\d{2}$"


def _real_date(v: Optional[str]) -> Optional[str]:
    # Raises ValueError for calendar-invalid dates like 2026-02-30
    if v is not None:
        datetime.strptime(v, "%Y-%m-%d")
    return v


def _real_time(v: Optional[str]) -> Optional[str]:
    if v is not None:
        datetime.strptime(v, "%H:%M")
    return v


class EventBase(BaseModel):
    title: str
    description: Optional[str] = None
    artist: Optional[str] = None
    image_url: Optional[str] = None
    event_date: str = Field(pattern=DATE_PATTERN)  # YYYY-MM-DD
    event_time: str = Field(pattern=TIME_PATTERN)  # HH:MM, UTC


class EventCreate(EventBase):
    venue_id: int
    category_id: Optional[int] = None
    organizer_id: Optional[int] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    promo_code: Optional[str] = None
    discount_percentage: Optional[int] = Field(None, ge=1, le=100)
    usage_limit: int = Field(0, ge=0)

    @field_validator("event_date")
    @classmethod
    def real_date(cls, v):
        return _real_date(v)

    @field_validator("event_time")
    @classmethod
    def real_time(cls, v):
        return _real_time(v)

    @field_validator("promo_code", mode="before")
    @classmethod
    def blank_promo_code(cls, v):
        """An empty code means the event has no promo code."""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    artist: Optional[str] = None
    image_url: Optional[str] = None
    event_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    event_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    venue_id: Optional[int] = None
    category_id: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    promo_code: Optional[str] = None
    discount_percentage: Optional[int] = Field(None, ge=1, le=100)
    usage_limit: Optional[int] = Field(None, ge=0)

    @field_validator("event_date")
    @classmethod
    def real_date(cls, v):
        return _real_date(v)

    @field_validator("event_time")
    @classmethod
    def real_time(cls, v):
        return _real_time(v)

    @field_validator("promo_code", mode="before")
    @classmethod
    def strip_promo_code(cls, v):
        # "" clears the code; None leaves it untouched
        return v.strip() if isinstance(v, str) else v


class EventResponse(EventBase):
    id: int
    venue_id: int
    category_id: Optional[int] = None
    organizer_id: Optional[int] = None
    price: float
    has_promo_code: bool = False
    discount_percentage: Optional[int] = None
    usage_limit: int = 0
    usage_count: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class EventWithVenueResponse(EventResponse):
    venue: VenueResponse
    category: Optional[CategoryResponse] = None


class EventDetailResponse(EventWithVenueResponse):
    dynamic_price: float
    tickets_sold: int
    percent_sold: float
    days_until_event: int


# ============== Pricing Schemas ==============

class PricingInfo(BaseModel):
    base_price: float
    quantity: int
    group_discount_pct: int
    promo_discount_pct: int
    discount_type: str
    discount_percentage: float
    final_unit_price: float
    total_price: float
    total_savings: float
    description: str

    @classmethod
    def from_breakdown(cls, breakdown) -> "PricingInfo":
        return cls(
            base_price=breakdown.base_price,
            quantity=breakdown.quantity,
            group_discount_pct=breakdown.group_discount_pct,
            promo_discount_pct=breakdown.promo_discount_pct,
            discount_type=breakdown.discount_type,
            discount_percentage=breakdown.discount_percentage,
            final_unit_price=breakdown.final_unit_price,
            total_price=breakdown.total_price,
            total_savings=breakdown.total_savings,
            description=breakdown.description,
        )


class PromoInfo(BaseModel):
    code: str
    valid: bool
    message: str
    discount_percentage: Optional[int] = None


class PriceQuoteResponse(BaseModel):
    event_id: int
    base_price: float
    dynamic_price: float
    tickets_sold: int
    capacity: int
    percent_sold: float
    days_until_event: int
    pricing: PricingInfo
    promo: Optional[PromoInfo] = None


# ============== Purchase Schemas ==============

class BuyRequest(BaseModel):
    event_id: int
    promo_code: Optional[str] = None
    quantity: int = Field(1, ge=1)


class BuyResponse(BaseModel):
    success: bool
    url: str
    session_id: str
    pricing: PricingInfo
    promo: Optional[PromoInfo] = None


class SessionDetailsResponse(BaseModel):
    success: bool
    quantity: int
    amount_total: Optional[float] = None
    discount_applied: bool
    discount_type: str = "none"
    discount_percentage: float = 0


class ValidatePromoRequest(BaseModel):
    event_id: int
    promo_code: str


class ValidatePromoResponse(BaseModel):
    success: bool
    valid: bool
    discount_percentage: Optional[int] = None
    message: str


# ============== Ticket Schemas ==============

class TicketResponse(BaseModel):
    id: int
    user_id: int
    event_id: Optional[int] = None
    quantity: int
    unit_price: float
    amount_paid: Optional[float] = None
    checkout_session_id: Optional[str] = None
    ticket_codes: list[str] = []
    purchased_at: datetime

    class Config:
        from_attributes = True


class TicketWithEventResponse(TicketResponse):
    event: Optional[EventWithVenueResponse] = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str
    ticket: Optional[TicketWithEventResponse] = None
    already_processed: bool = False


# ============== Favorite Schemas ==============

class FavoriteResponse(BaseModel):
    success: bool
    event_id: int
    is_favorite: bool
    message: str


# ============== Notification Schemas ==============

class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    notification_type: NotificationType
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
