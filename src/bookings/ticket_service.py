from typing import Dict, Iterator, List, Optional, Set
from io import BytesIO
import base64
import json
import logging
import secrets

import qrcode
from qrcode import constants
from PIL import Image
from sqlalchemy.orm import Session

from src.errors import TicketNotFoundError
from src.models import Booking, Ticket, new_id, utcnow

logger = logging.getLogger(__name__)

QR_PAYLOAD_VERSION = 1


class TicketService:
    """Mints admission tickets and renders their QR codes and PDF sheets"""

    def __init__(self, db: Session):
        self.db = db

    def mint_tickets(self, booking: Booking) -> List[Ticket]:
        """Create one ticket per purchased unit; flushes, caller commits"""

        attendees = self._attendee_iter(booking)
        used_codes: Set[str] = set()
        tickets = []
        now = utcnow()

        for item in booking.line_items:
            for _ in range(item.quantity):
                attendee = next(attendees)
                ticket = Ticket(
                    id=new_id(),
                    booking_id=booking.id,
                    event_id=booking.event_id,
                    ticket_type_id=item.ticket_type_id,
                    attendee_name=attendee.get("name") or booking.buyer_name,
                    attendee_email=attendee.get("email") or booking.buyer_email,
                    verification_code=self._generate_verification_code(booking.event_id, used_codes),
                    is_checked_in=False,
                    created_at=now
                )
                tickets.append(ticket)

        self.db.add_all(tickets)
        self.db.flush()

        logger.info("Minted %s ticket(s) for booking %s", len(tickets), booking.id)
        return tickets

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            raise TicketNotFoundError(ticket_id)
        return ticket

    def get_booking_tickets(self, booking_id: str) -> List[Ticket]:
        return self.db.query(Ticket).filter(
            Ticket.booking_id == booking_id
        ).order_by(Ticket.created_at, Ticket.id).all()

    def encode_qr_payload(self, ticket: Ticket) -> str:
        """Compact base64 JSON payload printed into the ticket's QR code"""
        qr_data = {
            "v": QR_PAYLOAD_VERSION,
            "eid": ticket.event_id,
            "tid": ticket.id,
            "code": ticket.verification_code
        }
        json_data = json.dumps(qr_data, separators=(",", ":"))
        return base64.b64encode(json_data.encode()).decode()

    def generate_qr_code_image(self, ticket: Ticket, size: int = 300, border: int = 4) -> bytes:
        """Render the ticket's QR payload as PNG bytes"""

        qr = qrcode.QRCode(
            version=1,
            error_correction=constants.ERROR_CORRECT_M,
            box_size=10,
            border=border,
        )
        qr.add_data(self.encode_qr_payload(ticket))
        qr.make(fit=True)

        qr_image = qr.make_image(fill_color="black", back_color="white")
        qr_image = qr_image.resize((size, size), Image.LANCZOS)

        buffer = BytesIO()
        qr_image.save(buffer, format="PNG")
        return buffer.getvalue()

    def generate_pdf_tickets(self, booking: Booking) -> bytes:
        """Printable sheet with one block and QR code per ticket"""

        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import Image as PdfImage
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

        tickets = self.get_booking_tickets(booking.id)
        if not tickets:
            raise TicketNotFoundError(booking.id)

        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4)
        styles = getSampleStyleSheet()
        story = [Paragraph(f"Booking {booking.reference}", styles["Title"]), Spacer(1, 20)]

        for i, ticket in enumerate(tickets):
            if i > 0:
                story.append(Spacer(1, 30))

            story.append(Paragraph(f"Ticket #{ticket.id[:8].upper()}", styles["Heading2"]))
            story.append(Spacer(1, 10))

            ticket_info = [
                ["Attendee:", ticket.attendee_name or ticket.attendee_email or ""],
                ["Ticket type:", ticket.ticket_type.name if ticket.ticket_type else ticket.ticket_type_id],
                ["Event:", ticket.event_id],
                ["Verification code:", ticket.verification_code]
            ]
            info_table = Table(ticket_info, colWidths=[120, 280])
            info_table.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, -1), colors.lightgrey),
                ("TEXTCOLOR", (0, 0), (-1, -1), colors.black),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]))
            story.append(info_table)
            story.append(Spacer(1, 10))
            story.append(PdfImage(BytesIO(self.generate_qr_code_image(ticket, size=160)), width=120, height=120))

        doc.build(story)
        return buffer.getvalue()

    def _attendee_iter(self, booking: Booking) -> Iterator[Dict[str, Optional[str]]]:
        for attendee in booking.attendees or []:
            yield attendee
        while True:
            yield {}

    def _generate_verification_code(self, event_id: str, used_codes: Set[str]) -> str:
        """Short uppercase code staff can type; unique within the event"""
        while True:
            code = secrets.token_hex(5).upper()
            if code in used_codes:
                continue
            exists = self.db.query(Ticket.id).filter(
                Ticket.event_id == event_id,
                Ticket.verification_code == code
            ).first()
            if not exists:
                used_codes.add(code)
                return code
