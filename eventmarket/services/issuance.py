"""
Ticket issuance from a confirmed checkout session.

The checkout session id is the idempotency key: it is stored on the ticket
under a unique constraint, so verifying the same session twice (client
redirect and webhook, or a page refresh) returns the ticket minted the first
time instead of minting another.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from eventmarket.errors import NotFoundError
from eventmarket.models import Event, Ticket, TicketCode, User, NotificationType
from eventmarket.services import reservations
from eventmarket.services.checkout import retrieve_checkout_session, session_metadata

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 12

ISSUED = "issued"
ALREADY_ISSUED = "already_issued"
PAYMENT_NOT_CONFIRMED = "payment_not_confirmed"


@dataclass(frozen=True)
class IssuanceResult:
    status: str
    ticket: Optional[Ticket] = None

    @property
    def success(self) -> bool:
        return self.status != PAYMENT_NOT_CONFIRMED


def generate_ticket_code() -> str:
    return "TICKET-" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def generate_ticket_codes(quantity: int) -> list[str]:
    codes = []
    while len(codes) < quantity:
        code = generate_ticket_code()
        if code not in codes:
            codes.append(code)
    return codes


def load_ticket(db: Session, ticket_id: int) -> Optional[Ticket]:
    return (
        db.query(Ticket)
        .options(
            joinedload(Ticket.event).joinedload(Event.venue),
            joinedload(Ticket.user),
            joinedload(Ticket.codes),
        )
        .filter(Ticket.id == ticket_id)
        .first()
    )


def find_ticket_for_session(db: Session, session_id: str) -> Optional[Ticket]:
    ticket = db.query(Ticket).filter(Ticket.checkout_session_id == session_id).first()
    return load_ticket(db, ticket.id) if ticket else None


def _metadata_int(metadata, key: str, default: Optional[int] = None) -> Optional[int]:
    value = metadata.get(key)
    if value in (None, ""):
        return default
    return int(value)


def mint_ticket(
    db: Session,
    session_id: str,
    user: User,
    event: Event,
    quantity: int,
    unit_price: Decimal,
    amount_paid: Optional[Decimal] = None,
    hold_id: Optional[int] = None,
) -> Ticket:
    """Persist one ticket with ``quantity`` fresh codes. Commits."""
    ticket = Ticket(
        user_id=user.id,
        event_id=event.id,
        quantity=quantity,
        unit_price=unit_price,
        amount_paid=amount_paid,
        checkout_session_id=session_id,
    )
    ticket.codes = [
        TicketCode(position=i, code=code)
        for i, code in enumerate(generate_ticket_codes(quantity))
    ]
    db.add(ticket)
    user.purchased_tickets.append(ticket)
    reservations.confirm_hold(db, hold_id=hold_id, session_id=session_id)
    db.commit()
    return ticket


def issue_ticket_for_session(db: Session, session_id: str) -> IssuanceResult:
    """Verify a checkout session and mint its ticket exactly once."""
    existing = find_ticket_for_session(db, session_id)
    if existing:
        return IssuanceResult(status=ALREADY_ISSUED, ticket=existing)

    session = retrieve_checkout_session(session_id)
    if session.payment_status != "paid":
        return IssuanceResult(status=PAYMENT_NOT_CONFIRMED)

    metadata = session_metadata(session)
    event = (
        db.query(Event)
        .options(joinedload(Event.venue))
        .filter(Event.id == _metadata_int(metadata, "event_id"))
        .first()
    )
    if not event:
        raise NotFoundError("Event not found!")

    user = db.query(User).filter(User.id == _metadata_int(metadata, "user_id")).first()
    if not user:
        raise NotFoundError("User not found")

    quantity = _metadata_int(metadata, "quantity", 1)
    unit_price = Decimal(metadata.get("unit_price") or str(event.price))
    amount_paid = None
    if session.amount_total is not None:
        amount_paid = Decimal(session.amount_total) / 100

    try:
        ticket = mint_ticket(
            db,
            session_id=session_id,
            user=user,
            event=event,
            quantity=quantity,
            unit_price=unit_price,
            amount_paid=amount_paid,
            hold_id=_metadata_int(metadata, "hold_id"),
        )
    except IntegrityError:
        db.rollback()
        existing = find_ticket_for_session(db, session_id)
        if existing:
            logger.info("Session %s was issued concurrently; returning ticket %s", session_id, existing.id)
            return IssuanceResult(status=ALREADY_ISSUED, ticket=existing)
        raise

    logger.info("Issued ticket %s (%d seat(s)) for session %s", ticket.id, quantity, session_id)
    _after_issue(db, ticket, user, event)
    return IssuanceResult(status=ISSUED, ticket=load_ticket(db, ticket.id))


def _after_issue(db: Session, ticket: Ticket, user: User, event: Event) -> None:
    """Delivery and notification. Never fails the issuance."""
    from eventmarket.services.delivery import queue_ticket_delivery
    from eventmarket.services.notifications import create_notification

    try:
        queue_ticket_delivery(db, ticket.id)
    except Exception:
        db.rollback()
        logger.exception("Could not queue delivery for ticket %s", ticket.id)

    try:
        create_notification(
            db,
            user_id=user.id,
            title="Ticket Purchase Successful!",
            message=f'Payment successful! Your tickets ({ticket.quantity}) for "{event.title}" are now confirmed.',
            notification_type=NotificationType.PAYMENT_SUCCESS,
        )
    except Exception:
        db.rollback()
        logger.exception("Could not create purchase notification for ticket %s", ticket.id)
