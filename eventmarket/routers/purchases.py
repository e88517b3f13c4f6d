from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.deps import get_current_user
from eventmarket.models import User
from eventmarket.rate_limit import limiter
from eventmarket.schemas import (
    BuyRequest,
    BuyResponse,
    PricingInfo,
    PromoInfo,
    SessionDetailsResponse,
    TicketWithEventResponse,
    VerifyPaymentResponse,
)
from eventmarket.services.checkout import retrieve_checkout_session, session_metadata
from eventmarket.services.issuance import ALREADY_ISSUED, issue_ticket_for_session
from eventmarket.services.purchases import start_purchase

router = APIRouter(prefix="/events", tags=["purchases"])


@router.post("/buy", response_model=BuyResponse)
@limiter.limit("20/minute")
def buy_ticket(
    request: Request,
    purchase: BuyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a hosted checkout session for the current user."""
    intent = start_purchase(
        db,
        event_id=purchase.event_id,
        user=current_user,
        quantity=purchase.quantity,
        promo_code=purchase.promo_code,
    )

    promo = None
    if purchase.promo_code:
        promo = PromoInfo(
            code=purchase.promo_code,
            valid=intent.promo_applied,
            message=intent.promo_message or "",
            discount_percentage=intent.breakdown.promo_discount_pct or None,
        )

    return BuyResponse(
        success=True,
        url=intent.session.url,
        session_id=intent.session.session_id,
        pricing=PricingInfo.from_breakdown(intent.breakdown),
        promo=promo,
    )


@router.get("/verify-payment", response_model=VerifyPaymentResponse)
def verify_payment(
    session_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Confirm a paid checkout session and issue its ticket exactly once."""
    result = issue_ticket_for_session(db, session_id)

    if not result.success:
        return VerifyPaymentResponse(success=False, message="Payment not completed")

    already = result.status == ALREADY_ISSUED
    return VerifyPaymentResponse(
        success=True,
        message="Payment already processed" if already else "Payment verified and ticket created",
        ticket=TicketWithEventResponse.model_validate(result.ticket),
        already_processed=already,
    )


@router.get("/session/{session_id}", response_model=SessionDetailsResponse)
def get_session_details(session_id: str):
    """Quantity and discount recorded on a checkout session."""
    session = retrieve_checkout_session(session_id)
    metadata = session_metadata(session)

    discount_type = metadata.get("discount_type") or "none"
    amount_total = session.amount_total / 100 if session.amount_total is not None else None

    return SessionDetailsResponse(
        success=True,
        quantity=int(metadata.get("quantity") or 1),
        amount_total=amount_total,
        discount_applied=discount_type != "none",
        discount_type=discount_type,
        discount_percentage=float(metadata.get("discount_percentage") or 0),
    )
