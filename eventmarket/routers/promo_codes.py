from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from eventmarket.database import get_db
from eventmarket.rate_limit import limiter
from eventmarket.schemas import ValidatePromoRequest, ValidatePromoResponse
from eventmarket.services import promo_ledger
from eventmarket.services.purchases import load_event

router = APIRouter(prefix="/events", tags=["promo-codes"])


@router.post("/validate-promo", response_model=ValidatePromoResponse)
@limiter.limit("30/minute")
def validate_promo_code(
    request: Request,
    body: ValidatePromoRequest,
    db: Session = Depends(get_db),
):
    """Check an event's promo code. Invalid and exhausted codes are 200 with valid=false."""
    event = load_event(db, body.event_id)
    result = promo_ledger.validate(db, event, body.promo_code)
    return ValidatePromoResponse(
        success=True,
        valid=result.valid,
        discount_percentage=result.discount_percentage,
        message=result.message,
    )
