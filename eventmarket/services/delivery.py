"""Ticket delivery: QR codes, PDF and email for an issued ticket.

Issuance only records a pending TicketDelivery and hands it to a background
thread. Each attempt is its own row; failed attempts are retried through
APScheduler so a broken mail provider never touches the purchase itself.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session

from eventmarket.config import get_settings
from eventmarket.database import SessionLocal
from eventmarket.models import Ticket, TicketDelivery, DeliveryStatus, NotificationType
from eventmarket.services.email import send_ticket_email
from eventmarket.services.notifications import create_notification
from eventmarket.services.pdf_ticket import generate_ticket_pdf
from eventmarket.services.qrcode import generate_qr_code, ticket_qr_payload

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAYS_SECONDS = [0, 60, 300]  # immediate, 1 min, 5 min


# ============== Artifacts ==============

def tickets_dir() -> Path:
    path = Path(get_settings().uploads_dir) / "event-tickets"
    path.mkdir(parents=True, exist_ok=True)
    return path


def qrcodes_dir() -> Path:
    path = Path(get_settings().uploads_dir) / "qrcodes"
    path.mkdir(parents=True, exist_ok=True)
    return path


def qr_path(ticket_id: int, code: str) -> Path:
    return qrcodes_dir() / f"qr_{ticket_id}_{code}.png"


def pdf_path(ticket_id: int) -> Path:
    return tickets_dir() / f"ticket_{ticket_id}.pdf"


def render_ticket_qr(ticket: Ticket, code: str) -> bytes:
    purchased = ticket.purchased_at.isoformat() if ticket.purchased_at else ""
    return generate_qr_code(ticket_qr_payload(
        ticket_id=ticket.id,
        ticket_code=code,
        event_name=ticket.event.title if ticket.event else "",
        attendee_name=ticket.user.full_name,
        purchase_date=purchased,
    ))


def render_ticket_pdf(ticket: Ticket) -> bytes:
    """Render the ticket PDF and write every QR code and the PDF to disk."""
    event = ticket.event
    if event is None:
        raise ValueError(f"Ticket {ticket.id} has no event")

    seats = []
    for code in ticket.ticket_codes:
        png = render_ticket_qr(ticket, code)
        qr_path(ticket.id, code).write_bytes(png)
        seats.append((code, png))

    total = ticket.amount_paid if ticket.amount_paid is not None else ticket.unit_price * ticket.quantity
    pdf_bytes = generate_ticket_pdf(
        event_name=event.title,
        event_date=event.event_date,
        event_time=event.event_time,
        venue_name=event.venue.name if event.venue else "",
        venue_address=event.venue.address if event.venue else "",
        attendee_name=ticket.user.full_name,
        attendee_email=ticket.user.email,
        ticket_id=ticket.id,
        purchase_date=ticket.purchased_at.strftime("%Y-%m-%d") if ticket.purchased_at else "",
        quantity=ticket.quantity,
        total_price=f"${total:.2f}",
        seats=seats,
    )
    pdf_path(ticket.id).write_bytes(pdf_bytes)
    return pdf_bytes


def delete_ticket_artifacts(ticket: Ticket) -> None:
    """Remove a ticket's PDF and QR images. Missing files are ignored."""
    paths = [pdf_path(ticket.id)] + [qr_path(ticket.id, code) for code in ticket.ticket_codes]
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Could not delete ticket artifact %s", path)


# ============== Delivery ==============

def _load(db: Session, delivery_id: int) -> Optional[TicketDelivery]:
    return db.query(TicketDelivery).filter(TicketDelivery.id == delivery_id).first()


def deliver(delivery_id: int):
    """Execute a single delivery attempt. Opens its own session."""
    from eventmarket.services.issuance import load_ticket

    db = SessionLocal()
    try:
        delivery = _load(db, delivery_id)
        if not delivery or delivery.status != DeliveryStatus.PENDING:
            return

        ticket = load_ticket(db, delivery.ticket_id)
        if not ticket:
            delivery.status = DeliveryStatus.FAILED
            delivery.error = "Ticket not found"
            delivery.completed_at = datetime.now(timezone.utc)
            db.commit()
            return

        try:
            pdf_bytes = render_ticket_pdf(ticket)
            send_ticket_email(
                to_email=ticket.user.email,
                recipient_name=ticket.user.full_name,
                event_name=ticket.event.title,
                event_date=ticket.event.event_date,
                event_time=ticket.event.event_time,
                venue_name=ticket.event.venue.name if ticket.event.venue else "",
                ticket_id=ticket.id,
                ticket_codes=ticket.ticket_codes,
                pdf_bytes=pdf_bytes,
            )
        except Exception as exc:
            logger.warning("Ticket delivery %s failed: %s", delivery.id, exc)
            _handle_failure(db, delivery, str(exc))
        else:
            delivery.status = DeliveryStatus.SENT
            delivery.pdf_path = str(pdf_path(ticket.id))
            delivery.completed_at = datetime.now(timezone.utc)
            logger.info("Ticket %s delivered to %s", ticket.id, ticket.user.email)

        db.commit()
    except Exception:
        logger.exception("Ticket delivery error for delivery_id=%s", delivery_id)
    finally:
        db.close()


def _handle_failure(db: Session, delivery: TicketDelivery, error_msg: str):
    """Mark a delivery failed and schedule the next attempt if any remain."""
    delivery.error = error_msg
    delivery.completed_at = datetime.now(timezone.utc)
    delivery.status = DeliveryStatus.FAILED

    if delivery.attempt >= MAX_ATTEMPTS:
        logger.error("Ticket %s delivery gave up after %d attempts", delivery.ticket_id, delivery.attempt)
        _notify_gave_up(db, delivery)
        return

    next_attempt = delivery.attempt + 1
    delay = RETRY_DELAYS_SECONDS[min(next_attempt - 1, len(RETRY_DELAYS_SECONDS) - 1)]

    retry = TicketDelivery(
        ticket_id=delivery.ticket_id,
        status=DeliveryStatus.PENDING,
        attempt=next_attempt,
    )
    db.add(retry)
    db.commit()
    db.refresh(retry)

    try:
        from eventmarket.services.scheduler import get_scheduler
        from apscheduler.triggers.date import DateTrigger

        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        get_scheduler().add_job(
            deliver,
            trigger=DateTrigger(run_date=run_at),
            id=f"ticket_delivery_retry_{retry.id}",
            replace_existing=True,
            args=[retry.id],
        )
    except Exception as e:
        logger.warning("Could not schedule ticket delivery retry: %s", e)


def _notify_gave_up(db: Session, delivery: TicketDelivery):
    ticket = delivery.ticket
    create_notification(
        db,
        user_id=ticket.user_id,
        title="Ticket Email Not Delivered",
        message=f"We could not email ticket #{ticket.id}. You can still download it from My Tickets.",
        notification_type=NotificationType.TICKET_DELIVERY_FAILED,
    )


def _dispatch(delivery_id: int):
    thread = threading.Thread(target=deliver, args=[delivery_id], daemon=True)
    thread.start()


def queue_ticket_delivery(db: Session, ticket_id: int) -> TicketDelivery:
    """Record a pending delivery and start it in the background. Non-blocking."""
    delivery = TicketDelivery(
        ticket_id=ticket_id,
        status=DeliveryStatus.PENDING,
        attempt=1,
    )
    db.add(delivery)
    db.commit()
    db.refresh(delivery)

    _dispatch(delivery.id)
    return delivery
