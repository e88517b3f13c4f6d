import json
import qrcode
from io import BytesIO


def ticket_qr_payload(
    ticket_id: int,
    ticket_code: str,
    event_name: str,
    attendee_name: str,
    purchase_date: str,
) -> str:
    """JSON payload scanned at the door."""
    return json.dumps({
        "ticketId": ticket_id,
        "ticketCode": ticket_code,
        "eventName": event_name,
        "attendeeName": attendee_name,
        "purchaseDate": purchase_date,
    })


def generate_qr_code(data: str) -> bytes:
    """
    Generate a QR code image for a ticket code.
    Returns the image as PNG bytes.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return buffer.getvalue()
