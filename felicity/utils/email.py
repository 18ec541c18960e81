import base64
from threading import Thread

from flask import current_app
from flask_mail import Message, Mail

mail = Mail()


def send_async_email(app, msg):
    with app.app_context():
        try:
            mail.send(msg)
        except Exception as e:
            app.logger.error(f"Failed to send email: {e}")


def _attach_qr(msg, qr_code):
    if qr_code and qr_code.startswith("data:image/"):
        data = base64.b64decode(qr_code.split(",", 1)[1])
        msg.attach("ticket-qr.png", "image/png", data)


def _format_date(value):
    return value.strftime("%B %d, %Y at %I:%M %p") if value else "TBA"


def send_ticket_email(participant, event, ticket_id, qr_code):
    """Send the registration ticket for a normal event."""
    app = current_app._get_current_object()
    subject = f"Your ticket for {event.name}"

    # If in testing mode, log the email instead of sending it
    if app.testing:
        app.logger.info("--- MOCK TICKET EMAIL ---")
        app.logger.info(f"To: {participant.email}")
        app.logger.info(f"Subject: {subject}")
        app.logger.info(f"Ticket ID: {ticket_id}")
        app.logger.info("--- END MOCK TICKET EMAIL ---")
        return

    msg = Message(
        subject,
        sender=(app.config.get("MAIL_SENDER_NAME"), app.config.get("MAIL_USERNAME")),
        recipients=[participant.email],
    )
    msg.body = f"""
Hi {participant.first_name},

You're registered for "{event.name}".

Ticket ID: {ticket_id}
Starts: {_format_date(event.start_date)}
Ends: {_format_date(event.end_date)}

Your QR code is attached. Show it at the venue to have your attendance marked.

See you there!
"""
    _attach_qr(msg, qr_code)

    Thread(target=send_async_email, args=(app, msg)).start()


def send_merchandise_email(participant, event, ticket_id, selections, total_amount, qr_code):
    """Send the order confirmation for an approved merchandise purchase."""
    app = current_app._get_current_object()
    subject = f"Order confirmed - {event.name}"

    if app.testing:
        app.logger.info("--- MOCK MERCHANDISE EMAIL ---")
        app.logger.info(f"To: {participant.email}")
        app.logger.info(f"Subject: {subject}")
        app.logger.info(f"Ticket ID: {ticket_id}")
        app.logger.info(f"Items: {[(s.name, s.quantity) for s in selections]}")
        app.logger.info(f"Total: Rs.{total_amount}")
        app.logger.info("--- END MOCK MERCHANDISE EMAIL ---")
        return

    lines = "\n".join(
        f"- {s.name}"
        + (f" ({', '.join(v for v in (s.size, s.color, s.variant) if v)})" if (s.size or s.color or s.variant) else "")
        + f" x {s.quantity} @ Rs.{s.price}"
        for s in selections
    )

    msg = Message(
        subject,
        sender=(app.config.get("MAIL_SENDER_NAME"), app.config.get("MAIL_USERNAME")),
        recipients=[participant.email],
    )
    msg.body = f"""
Hi {participant.first_name},

Your payment for "{event.name}" has been approved.

Order ID: {ticket_id}
{lines}

Total: Rs.{total_amount}

Your QR code is attached. Show it when you collect your order.
"""
    _attach_qr(msg, qr_code)

    Thread(target=send_async_email, args=(app, msg)).start()
