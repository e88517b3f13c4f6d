import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload

from eventmarket.database import get_db
from eventmarket.deps import get_current_user
from eventmarket.models import Event, Ticket, User, UserRole
from eventmarket.schemas import TicketWithEventResponse
from eventmarket.services import reservations
from eventmarket.services.delivery import (
    delete_ticket_artifacts,
    pdf_path,
    qr_path,
    render_ticket_pdf,
    render_ticket_qr,
)
from eventmarket.services.issuance import load_ticket

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _ticket_query(db: Session):
    return db.query(Ticket).options(
        joinedload(Ticket.event).joinedload(Event.venue),
        joinedload(Ticket.codes),
    )


def _get_owned_ticket(db: Session, ticket_id: int, user: User) -> Ticket:
    ticket = load_ticket(db, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if ticket.user_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Unauthorized access to ticket")
    return ticket


@router.get("/user", response_model=list[TicketWithEventResponse])
def get_my_tickets(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """All tickets bought by the current user, newest first."""
    return (
        _ticket_query(db)
        .filter(Ticket.user_id == current_user.id)
        .order_by(Ticket.purchased_at.desc(), Ticket.id.desc())
        .all()
    )


@router.get("/event/{event_id}", response_model=list[TicketWithEventResponse])
def get_event_tickets(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tickets sold for an event. Admins and the event's organizer only."""
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    if current_user.role != UserRole.ADMIN and event.organizer_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not allowed to view tickets for this event")

    return (
        _ticket_query(db)
        .filter(Ticket.event_id == event_id)
        .order_by(Ticket.purchased_at.desc(), Ticket.id.desc())
        .all()
    )


@router.get("/{ticket_id}", response_model=TicketWithEventResponse)
def get_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_owned_ticket(db, ticket_id, current_user)


@router.get("/{ticket_id}/download")
def download_ticket(
    ticket_id: int,
    code: str = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Download the ticket PDF. Rendered on demand if delivery has not produced it."""
    ticket = _get_owned_ticket(db, ticket_id, current_user)
    if code not in ticket.ticket_codes:
        raise HTTPException(status_code=400, detail="Invalid ticket code")

    path = pdf_path(ticket.id)
    if path.exists():
        pdf_bytes = path.read_bytes()
    elif ticket.event is not None:
        pdf_bytes = render_ticket_pdf(ticket)
    else:
        raise HTTPException(status_code=404, detail="Ticket PDF not found")

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=ticket_{code}.pdf"},
    )


@router.get("/{ticket_id}/qrcode")
def view_ticket_qrcode(
    ticket_id: int,
    code: str = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """PNG QR code for one seat of a ticket."""
    ticket = _get_owned_ticket(db, ticket_id, current_user)
    if code not in ticket.ticket_codes:
        raise HTTPException(status_code=400, detail="Invalid ticket code")

    path = qr_path(ticket.id, code)
    if path.exists():
        png = path.read_bytes()
    else:
        png = render_ticket_qr(ticket, code)
        path.write_bytes(png)

    return Response(content=png, media_type="image/png")


@router.delete("/{ticket_id}")
def delete_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete one of the current user's tickets and its files. Its seats return to sale."""
    ticket = load_ticket(db, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if ticket.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Unauthorized: You can only delete your own tickets")

    delete_ticket_artifacts(ticket)

    if ticket.event_id is not None:
        reservations.return_seats(db, ticket.event_id, ticket.quantity)
    if ticket in current_user.purchased_tickets:
        current_user.purchased_tickets.remove(ticket)

    db.delete(ticket)
    db.commit()

    logger.info("Ticket %s deleted by user %s", ticket_id, current_user.id)
    return {"message": "Ticket deleted successfully"}
