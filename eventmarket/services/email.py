import logging
import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pathlib import Path
from typing import Optional

from eventmarket.config import get_settings

logger = logging.getLogger(__name__)

# Set up Jinja2 template environment
templates_dir = Path(__file__).parent.parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"]),
)


class EmailNotConfigured(RuntimeError):
    pass


def _send_email(
    to_email: str,
    subject: str,
    html_content: str,
    attachments: Optional[list[dict]] = None,
) -> str:
    """Send an email via Resend. Returns the Resend message id; raises on failure."""
    settings = get_settings()

    if not settings.resend_api_key:
        raise EmailNotConfigured("RESEND_API_KEY not configured")

    resend.api_key = settings.resend_api_key

    params = {
        "from": settings.from_email,
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }
    if attachments:
        params["attachments"] = attachments

    response = resend.Emails.send(params)
    message_id = response.get("id", "") if isinstance(response, dict) else getattr(response, "id", "")
    logger.info("Sent '%s' to %s (%s)", subject, to_email, message_id)
    return message_id


def send_ticket_email(
    to_email: str,
    recipient_name: str,
    event_name: str,
    event_date: str,
    event_time: str,
    venue_name: str,
    ticket_id: int,
    ticket_codes: list[str],
    pdf_bytes: bytes,
) -> str:
    """Send the purchased ticket PDF as an attachment."""
    template = env.get_template("ticket_email.html")
    html_content = template.render(
        recipient_name=recipient_name,
        event_name=event_name,
        event_date=event_date,
        event_time=event_time,
        venue_name=venue_name,
        ticket_id=ticket_id,
        ticket_codes=ticket_codes,
        org_name=get_settings().org_name,
    )

    return _send_email(
        to_email,
        f"Your Ticket for {event_name}",
        html_content,
        attachments=[{
            "filename": f"ticket_{ticket_id}.pdf",
            "content": list(pdf_bytes),
        }],
    )
