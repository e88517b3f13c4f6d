"""PDF ticket generation service using fpdf2."""

from io import BytesIO
from fpdf import FPDF
from eventmarket.config import get_settings

INSTRUCTIONS = [
    "1. Please bring a printed copy of this ticket or show it on your mobile device.",
    "2. Arrive at least 30 minutes before the event starts.",
    "3. This ticket is valid for one-time entry only.",
    "4. Please follow venue guidelines regarding prohibited items.",
]


def _hex_to_rgb(hex_color: str) -> tuple:
    """Convert hex color to RGB tuple."""
    hex_color = hex_color.lstrip("#")
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _label_row(pdf: FPDF, y: float, label: str, value: str) -> float:
    pdf.set_font("Helvetica", "B", 11)
    pdf.set_xy(15, y)
    pdf.cell(45, 6, label)
    pdf.set_font("Helvetica", "", 11)
    pdf.cell(130, 6, value)
    return y + 7


def generate_ticket_pdf(
    event_name: str,
    event_date: str,
    event_time: str,
    venue_name: str,
    venue_address: str,
    attendee_name: str,
    attendee_email: str,
    ticket_id: int,
    purchase_date: str,
    quantity: int,
    total_price: str,
    seats: list[tuple[str, bytes]],
) -> bytes:
    """
    Generate a branded PDF with one page per seat.

    ``seats`` is a list of (ticket code, QR PNG bytes).
    Returns PDF as bytes.
    """
    settings = get_settings()
    r, g, b = _hex_to_rgb(settings.org_color)

    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=False)

    for index, (code, qr_png) in enumerate(seats, start=1):
        pdf.add_page()

        # Header band with org color
        pdf.set_fill_color(r, g, b)
        pdf.rect(0, 0, 210, 32, "F")
        pdf.set_font("Helvetica", "B", 20)
        pdf.set_text_color(255, 255, 255)
        pdf.set_xy(15, 8)
        pdf.cell(180, 10, "EVENT TICKET", align="C")
        pdf.set_font("Helvetica", "", 9)
        pdf.set_xy(15, 20)
        pdf.cell(180, 5, f"{settings.org_name}  |  Seat {index} of {len(seats)}", align="C")

        # Event name and details
        pdf.set_text_color(0, 0, 0)
        pdf.set_font("Helvetica", "B", 18)
        pdf.set_xy(15, 42)
        pdf.multi_cell(180, 8, event_name, align="C")
        y = pdf.get_y() + 3

        pdf.set_font("Helvetica", "", 11)
        pdf.set_text_color(80, 80, 80)
        pdf.set_xy(15, y)
        pdf.cell(180, 6, f"Date: {event_date}  |  Time: {event_time}", align="C")
        y += 7
        pdf.set_xy(15, y)
        pdf.cell(180, 6, venue_name, align="C")
        y += 6
        pdf.set_font("Helvetica", "", 9)
        pdf.set_xy(15, y)
        pdf.cell(180, 5, venue_address, align="C")
        y += 10

        # Tear-off line
        pdf.set_draw_color(r, g, b)
        pdf.set_line_width(0.4)
        pdf.set_dash_pattern(dash=2, gap=3)
        pdf.line(15, y, 195, y)
        pdf.set_dash_pattern()
        y += 6

        # Attendee information
        pdf.set_text_color(0, 0, 0)
        y = _label_row(pdf, y, "Name:", attendee_name)
        y = _label_row(pdf, y, "Email:", attendee_email)
        y = _label_row(pdf, y, "Ticket ID:", f"#{ticket_id}")
        y = _label_row(pdf, y, "Code:", code)
        y = _label_row(pdf, y, "Purchase Date:", purchase_date)
        y = _label_row(pdf, y, "Quantity:", str(quantity))
        y = _label_row(pdf, y, "Total Price:", total_price)
        y += 6

        # QR code centered with a border
        qr_size = 55
        qr_x = (210 - qr_size) / 2
        pdf.rect(qr_x - 2, y - 2, qr_size + 4, qr_size + 4)
        pdf.image(BytesIO(qr_png), x=qr_x, y=y, w=qr_size, h=qr_size)
        y += qr_size + 5

        pdf.set_font("Helvetica", "", 9)
        pdf.set_text_color(120, 120, 120)
        pdf.set_xy(15, y)
        pdf.cell(180, 5, "Scan this QR code at the event entrance", align="C")
        y += 12

        pdf.set_text_color(85, 85, 85)
        pdf.set_font("Helvetica", "B", 11)
        pdf.set_xy(15, y)
        pdf.cell(180, 6, "Instructions:")
        pdf.set_font("Helvetica", "", 9)
        for line in INSTRUCTIONS:
            y += 6
            pdf.set_xy(20, y)
            pdf.cell(175, 5, line)

        pdf.set_font("Helvetica", "", 7)
        pdf.set_text_color(136, 136, 136)
        pdf.set_xy(15, 280)
        pdf.cell(
            180, 4,
            "This ticket is non-refundable and non-transferable. By using this ticket, "
            "you agree to the terms and conditions.",
            align="C",
        )

    return bytes(pdf.output())
