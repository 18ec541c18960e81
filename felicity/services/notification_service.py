from flask import current_app

from felicity.models import Event, Registration, User
from felicity.utils import email


class NotificationService:
    """Hands confirmed registrations to the email/QR collaborators.

    Called after the registration has been committed; a failure here is
    logged and never undoes the registration.
    """

    @staticmethod
    def ticket_issued(registration: Registration, event: Event, participant: User) -> bool:
        try:
            if event.is_merchandise:
                email.send_merchandise_email(
                    participant,
                    event,
                    registration.ticket_id,
                    registration.merchandise_selections,
                    registration.total_amount,
                    registration.qr_code,
                )
            else:
                email.send_ticket_email(
                    participant, event, registration.ticket_id, registration.qr_code
                )
            return True
        except Exception as e:
            current_app.logger.error(
                f"Failed to send confirmation for registration {registration.id}: {str(e)}",
                exc_info=True,
            )
            return False
