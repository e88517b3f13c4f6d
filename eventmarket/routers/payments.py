import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Header
from sqlalchemy.orm import Session
import stripe

from eventmarket.database import get_db
from eventmarket.config import get_settings
from eventmarket.errors import NotFoundError
from eventmarket.services import reservations
from eventmarket.services.issuance import issue_ticket_for_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["payments"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """Handle Stripe webhook events."""
    settings = get_settings()

    if not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    stripe.api_key = settings.stripe_secret_key
    payload = await request.body()

    # Verify webhook signature if secret is configured
    if settings.stripe_webhook_secret:
        if not stripe_signature:
            raise HTTPException(status_code=400, detail="Missing signature")
        try:
            event = stripe.Webhook.construct_event(
                payload,
                stripe_signature,
                settings.stripe_webhook_secret,
            )
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError:
            raise HTTPException(status_code=400, detail="Invalid signature")
    else:
        # For development without webhook secret
        try:
            event = json.loads(payload)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")

    event_type = event.get("type") if isinstance(event, dict) else event.type
    event_data = event.get("data", {}).get("object", {}) if isinstance(event, dict) else event.data.object

    if event_type == "checkout.session.completed":
        handle_checkout_completed(event_data, db)
    elif event_type == "checkout.session.expired":
        handle_checkout_expired(event_data, db)

    return {"status": "success"}


def _object_id(session_data) -> Optional[str]:
    # Indexing works for both parsed JSON and StripeObject payloads
    try:
        return session_data["id"]
    except (KeyError, TypeError):
        return None


def handle_checkout_completed(session_data, db: Session):
    """Issue the ticket for a completed checkout. Safe to repeat."""
    session_id = _object_id(session_data)
    if not session_id:
        return

    try:
        result = issue_ticket_for_session(db, session_id)
    except NotFoundError as e:
        logger.warning("Webhook checkout.session.completed %s not issued: %s", session_id, e.message)
        return
    logger.info("Webhook checkout.session.completed %s: %s", session_id, result.status)


def handle_checkout_expired(session_data, db: Session):
    """Give back the seats held for a checkout that was never paid."""
    session_id = _object_id(session_data)
    if not session_id:
        return

    if reservations.release_hold(db, session_id=session_id):
        logger.info("Released seat hold for expired session %s", session_id)
