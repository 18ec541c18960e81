import base64
import json
import uuid
from io import BytesIO

import qrcode
from flask import current_app

from felicity.models import Event, Registration, User


class TicketService:
    @staticmethod
    def generate_ticket_id() -> str:
        prefix = current_app.config.get("TICKET_PREFIX", "FEL")
        return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

    @staticmethod
    def generate_qr(payload: dict) -> str:
        """Render ``payload`` as JSON into a PNG QR code and return it as a data URL."""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=2,
        )
        qr.add_data(json.dumps(payload))
        qr.make(fit=True)
        img = qr.make_image(fill_color="#1e293b", back_color="white")

        buffered = BytesIO()
        img.save(buffered, "PNG")
        encoded = base64.b64encode(buffered.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{encoded}"

    @staticmethod
    def issue(registration: Registration, event: Event, participant: User) -> Registration:
        """Attach a ticket id and QR code. Only called for confirmed registrations."""
        ticket_id = TicketService.generate_ticket_id()
        registration.ticket_id = ticket_id
        registration.qr_code = TicketService.generate_qr(
            {
                "ticketId": ticket_id,
                "eventId": event.id,
                "eventName": event.name,
                "participantId": participant.id,
                "participantName": participant.full_name,
            }
        )
        current_app.logger.info(
            f"Issued ticket {ticket_id} for participant {participant.id}, event {event.id}"
        )
        return registration
