import base64
import json
import re

from felicity import create_app
from felicity.extensions import db
from felicity.models import Registration
from felicity.models.enums import RegistrationState
from felicity.services.notification_service import NotificationService
from felicity.services.registration_service import RegistrationService
from felicity.services.ticket_service import TicketService
from felicity.utils import email


def test_ticket_id_format(app):
    ticket_ids = {TicketService.generate_ticket_id() for _ in range(50)}

    assert len(ticket_ids) == 50
    assert all(re.match(r"^FEL-[0-9A-F]{8}$", t) for t in ticket_ids)


def test_ticket_prefix_is_configurable():
    app = create_app("testing", TICKET_PREFIX="FEST")
    with app.app_context():
        assert TicketService.generate_ticket_id().startswith("FEST-")


def test_qr_is_png_data_url(app):
    qr = TicketService.generate_qr({"ticketId": "FEL-ABCDEF12"})

    header, encoded = qr.split(",", 1)
    assert header == "data:image/png;base64"
    assert base64.b64decode(encoded).startswith(b"\x89PNG")


def test_issue_encodes_ticket_payload(app, organizer, participant, make_event, monkeypatch):
    captured = {}
    monkeypatch.setattr(
        TicketService, "generate_qr", staticmethod(lambda payload: captured.update(payload) or "data:x")
    )
    event = make_event(organizer, name="Battle of Bands")

    registration = RegistrationService.create_registration(participant, event.id, {})

    assert captured == {
        "ticketId": registration.ticket_id,
        "eventId": event.id,
        "eventName": "Battle of Bands",
        "participantId": participant.id,
        "participantName": participant.full_name,
    }
    assert json.dumps(captured)


def test_notification_failure_keeps_registration(app, organizer, participant, make_event, monkeypatch):
    """A broken mailer is logged; the registration stays committed."""

    def broken(*args, **kwargs):
        raise RuntimeError("SMTP down")

    monkeypatch.setattr(email, "send_ticket_email", broken)
    event = make_event(organizer)

    registration = RegistrationService.create_registration(participant, event.id, {})

    assert db.session.get(Registration, registration.id).state == RegistrationState.CONFIRMED
    assert NotificationService.ticket_issued(registration, event, participant) is False


def test_testing_mode_logs_instead_of_sending(app, organizer, participant, make_event, caplog):
    event = make_event(organizer)

    with caplog.at_level("INFO"):
        registration = RegistrationService.create_registration(participant, event.id, {})

    assert "--- MOCK TICKET EMAIL ---" in caplog.text
    assert registration.ticket_id in caplog.text
