from collections import OrderedDict
from decimal import Decimal
from typing import List, Optional

from flask import current_app
from sqlalchemy.orm.attributes import set_committed_value

from felicity.exceptions import (
    MissingFieldsError,
    NotFoundError,
    PolicyViolation,
    UnauthorizedError,
    ValidationError,
)
from felicity.extensions import db
from felicity.models import Event, MerchandiseSelection, Registration, User
from felicity.models.enums import (
    LIVE_STATES,
    Eligibility,
    EventStatus,
    FormFieldType,
    PaymentStatus,
    RegistrationState,
    RegistrationStatus,
    UserRole,
)
from felicity.models.registration import states_for_status
from felicity.repositories.event_repository import EventRepository
from felicity.repositories.registration_repository import RegistrationRepository
from felicity.services.capacity_service import CapacityService
from felicity.services.event_service import EventService
from felicity.services.notification_service import NotificationService
from felicity.services.ticket_service import TicketService
from felicity.utils.dates import as_utc, utcnow
from felicity.utils.parsing import parse_enum, parse_int

OPEN_STATUSES = (EventStatus.PUBLISHED, EventStatus.ONGOING)
PAYMENT_DECISIONS = (PaymentStatus.APPROVED, PaymentStatus.REJECTED)


class RegistrationService:
    @staticmethod
    def create_registration(participant: User, event_id: int, data: dict) -> Registration:
        """Place a registration (normal event) or an order (merchandise event).

        Preconditions are checked in a fixed order and the first failure is
        raised. Nothing is written until all of them pass.
        """
        if not participant.is_participant():
            raise UnauthorizedError("Only participants can register for events")
        data = data or {}

        try:
            event = EventRepository.get_event_for_update(event_id)
            if not event:
                raise NotFoundError(f"Event with ID {event_id} not found")

            now = utcnow()
            EventService.reconcile(event, now)
            RegistrationService._check_open(event, participant, now)

            if event.is_merchandise:
                registration = RegistrationService._build_order(event, participant, data)
            else:
                registration = RegistrationService._build_registration(event, participant, data)

            RegistrationRepository.add(registration)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f"Participant {participant.id} registered for event {event.id}: "
            f"registration {registration.id} ({registration.state.value})"
        )
        if registration.state == RegistrationState.CONFIRMED:
            NotificationService.ticket_issued(registration, event, participant)
        return registration

    @staticmethod
    def upload_payment_proof(registration_id: int, participant: User, proof_ref) -> Registration:
        registration = RegistrationService._get_or_404(registration_id)
        if registration.participant_id != participant.id:
            raise UnauthorizedError("You can only upload payment proof for your own registrations")
        if not proof_ref or not str(proof_ref).strip():
            raise MissingFieldsError(["payment_proof"])

        RegistrationService._check_awaiting_payment(registration)

        try:
            EventRepository.get_event_for_update(registration.event_id)
            if not RegistrationRepository.submit_payment_proof(registration.id, str(proof_ref).strip()):
                # Lost to a concurrent upload or cancellation
                RegistrationService._check_awaiting_payment(RegistrationRepository.get_fresh(registration.id))
                raise PolicyViolation("This registration is not awaiting payment")
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        registration = RegistrationRepository.get_fresh(registration.id)
        current_app.logger.info(
            f"Participant {participant.id} uploaded payment proof for registration {registration.id}"
        )
        return registration

    @staticmethod
    def set_payment_status(registration_id: int, organizer: User, decision) -> Registration:
        """Approve or reject a submitted payment.

        Approval re-validates stock, purchase quota and the registration limit
        against the current state, with the event row locked. If any check
        fails nothing changes and the registration stays pending approval.
        """
        decision = parse_enum(PaymentStatus, decision, "payment_status")
        if decision not in PAYMENT_DECISIONS:
            raise ValidationError("payment_status must be 'approved' or 'rejected'", ["payment_status"])

        registration = RegistrationService._get_or_404(registration_id)
        RegistrationService._require_event_owner(registration.event, organizer)

        try:
            event = EventRepository.get_event_for_update(registration.event_id)
            EventService.reconcile(event, utcnow())
            registration = RegistrationRepository.get_fresh(registration_id)

            if not registration.payment_proof:
                raise PolicyViolation(
                    "Cannot update payment status: no proof uploaded for this registration"
                )
            if registration.state != RegistrationState.PAYMENT_SUBMITTED:
                raise PolicyViolation(
                    f"Payment has already been reviewed (current status: {registration.status.value})"
                )

            if decision == PaymentStatus.REJECTED:
                registration.transition_to(RegistrationState.REJECTED)
            else:
                RegistrationService._approve(event, registration)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f"Organizer {organizer.id} {decision.value} payment for registration {registration.id}"
        )
        if decision == PaymentStatus.APPROVED:
            NotificationService.ticket_issued(registration, event, registration.participant)
        return registration

    @staticmethod
    def cancel_registration(registration_id: int, participant: User) -> Registration:
        registration = RegistrationService._get_or_404(registration_id)
        if registration.participant_id != participant.id:
            raise UnauthorizedError("You can only cancel your own registrations")

        try:
            event = EventRepository.get_event_for_update(registration.event_id)
            registration = RegistrationRepository.get_fresh(registration_id)

            if registration.state == RegistrationState.CONFIRMED:
                if event.is_merchandise:
                    raise PolicyViolation("Confirmed merchandise orders cannot be cancelled")
                if event.has_started(utcnow()):
                    raise PolicyViolation("Registrations cannot be cancelled after the event has started")
                registration.transition_to(RegistrationState.CANCELLED)
                if EventRepository.release_slot(event.id):
                    set_committed_value(event, "registration_count", event.registration_count - 1)
            else:
                registration.transition_to(RegistrationState.CANCELLED)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f"Participant {participant.id} cancelled registration {registration.id} for event {event.id}"
        )
        return registration

    @staticmethod
    def mark_attendance(organizer: User, event_id: int, ticket_id) -> Registration:
        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError(f"Event with ID {event_id} not found")
        RegistrationService._require_event_owner(event, organizer)
        if not ticket_id:
            raise MissingFieldsError(["ticket_id"])

        now = utcnow()
        if not event.has_started(now):
            raise PolicyViolation("Attendance can only be marked after the event has started")

        registration = RegistrationRepository.find_by_ticket(event.id, str(ticket_id).strip())
        if not registration:
            raise NotFoundError("No registration with this ticket for this event")
        if registration.state != RegistrationState.CONFIRMED:
            raise PolicyViolation(
                f"Attendance can only be marked for registered participants "
                f"(current status: {registration.status.value})"
            )
        if registration.attendance:
            raise PolicyViolation("Attendance has already been marked for this ticket")

        try:
            registration.attendance = True
            registration.attendance_marked_at = now
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f"Attendance marked for ticket {registration.ticket_id} at event {event.id}")
        return registration

    @staticmethod
    def get_item_limits(event_id: int, participant: User) -> dict:
        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError(f"Event with ID {event_id} not found")
        if not event.is_merchandise:
            raise PolicyViolation("Purchase limits only apply to merchandise events")
        return CapacityService.remaining_quota(event, participant)

    @staticmethod
    def get_participant_registrations(participant: User, event_id: Optional[int] = None) -> List[Registration]:
        return RegistrationRepository.list_for_participant(participant.id, event_id)

    @staticmethod
    def get_event_registrations(event_id: int, organizer: User, status=None) -> List[Registration]:
        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError(f"Event with ID {event_id} not found")
        RegistrationService._require_event_owner(event, organizer)

        states = None
        if status:
            states = states_for_status(parse_enum(RegistrationStatus, status, "status"))
        return RegistrationRepository.list_for_event(event.id, states)

    @staticmethod
    def get_ticket(registration_id: int, user: User) -> Registration:
        registration = RegistrationService._get_or_404(registration_id)
        is_owner = registration.participant_id == user.id
        is_organizer = user.role == UserRole.ORGANIZER and registration.event.organizer_id == user.id
        if not (is_owner or is_organizer or user.role == UserRole.ADMIN):
            raise UnauthorizedError("Not authorized to view this ticket")
        if not registration.ticket_id:
            raise PolicyViolation("No ticket has been issued for this registration yet")
        return registration

    @staticmethod
    def _check_awaiting_payment(registration: Registration):
        if registration.state != RegistrationState.AWAITING_PAYMENT:
            if registration.payment_proof:
                raise PolicyViolation("Payment proof has already been uploaded for this registration")
            raise PolicyViolation("This registration is not awaiting payment")

    @staticmethod
    def _check_open(event: Event, participant: User, now):
        if event.status not in OPEN_STATUSES:
            raise PolicyViolation(
                f"Registrations are not open for this event (status: {event.status.value})"
            )

        deadline = as_utc(event.registration_deadline)
        if deadline and now > deadline:
            raise PolicyViolation("Registration deadline has passed")

        if event.registration_limit and event.registration_count >= event.registration_limit:
            raise PolicyViolation("Registration limit has been reached")

        if event.eligibility != Eligibility.ALL and (
            participant.participant_type is None
            or participant.participant_type.value != event.eligibility.value
        ):
            raise PolicyViolation(
                f"This event is only open to {event.eligibility.value} participants"
            )

    @staticmethod
    def _build_registration(event: Event, participant: User, data: dict) -> Registration:
        if RegistrationRepository.find_in_states(event.id, participant.id, LIVE_STATES):
            raise PolicyViolation("You are already registered for this event")

        responses = RegistrationService._validate_form_responses(event, data.get("form_responses"))
        registration = Registration(
            event_id=event.id,
            participant_id=participant.id,
            form_responses=responses,
            total_amount=event.registration_fee or Decimal("0"),
        )

        if event.is_paid:
            # Slot is reserved when the organizer approves the payment
            registration.state = RegistrationState.AWAITING_PAYMENT
        else:
            registration.state = RegistrationState.CONFIRMED
            RegistrationService._reserve_slot(event)
            TicketService.issue(registration, event, participant)

        if event.custom_form and not event.form_locked:
            event.form_locked = True
        return registration

    @staticmethod
    def _build_order(event: Event, participant: User, data: dict) -> Registration:
        if RegistrationRepository.find_in_states(
            event.id, participant.id, [RegistrationState.AWAITING_PAYMENT]
        ):
            raise PolicyViolation(
                "You have an unpaid order for this event. Upload its payment proof "
                "before placing a new order"
            )

        lines = RegistrationService._parse_selections(data.get("merchandise_selections"))
        if not lines:
            raise ValidationError("Please select at least one item", ["merchandise_selections"])

        items = EventRepository.get_items_for_update(event.id)
        for item_id, quantity in RegistrationService._quantities(lines).items():
            item = items.get(item_id)
            if not item:
                raise ValidationError(f"Item {item_id} does not exist for this event", ["merchandise_selections"])
            if item.stock < quantity:
                raise PolicyViolation(
                    f"Insufficient stock for {item.name}. Available: {item.stock}, requested: {quantity}"
                )
            ordered = CapacityService.ordered_quantity(event, participant.id, item.id)
            if ordered + quantity > item.purchase_limit:
                raise PolicyViolation(
                    f"Purchase limit exceeded for {item.name}. "
                    f"Per-person limit: {item.purchase_limit}, Already ordered: {ordered}, "
                    f"You can buy up to {max(0, item.purchase_limit - ordered)} more."
                )

        selections = []
        total = Decimal("0")
        for line in lines:
            item = items[line["item_id"]]
            RegistrationService._check_option(item.sizes, line["size"], "size", item.name)
            RegistrationService._check_option(item.colors, line["color"], "color", item.name)
            RegistrationService._check_option(item.variants, line["variant"], "variant", item.name)
            price = Decimal(item.price)
            total += price * line["quantity"]
            selections.append(
                MerchandiseSelection(
                    item_id=item.id,
                    name=item.name,
                    size=line["size"],
                    color=line["color"],
                    variant=line["variant"],
                    quantity=line["quantity"],
                    price=price,
                )
            )

        return Registration(
            event_id=event.id,
            participant_id=participant.id,
            state=RegistrationState.AWAITING_PAYMENT,
            form_responses={},
            total_amount=total,
            merchandise_selections=selections,
        )

    @staticmethod
    def _approve(event: Event, registration: Registration):
        participant_counted = False
        if event.is_merchandise:
            items = EventRepository.get_items_for_update(event.id)
            quantities = RegistrationService._quantities(
                [{"item_id": s.item_id, "quantity": s.quantity} for s in registration.merchandise_selections]
            )
            for item_id, quantity in quantities.items():
                item = items.get(item_id)
                if not item:
                    raise PolicyViolation(f"Item {item_id} is no longer available")
                if item.stock < quantity:
                    raise PolicyViolation(
                        f"Insufficient stock for {item.name}. Available: {item.stock}, ordered: {quantity}"
                    )
                approved = CapacityService.approved_quantity(event, registration, item.id)
                if approved + quantity > item.purchase_limit:
                    raise PolicyViolation(
                        f"Approving this order would exceed the purchase limit for {item.name}. "
                        f"Per-person limit: {item.purchase_limit}, Already approved: {approved}"
                    )

            participant_counted = CapacityService.is_participant_counted(
                event, registration.participant_id, exclude_id=registration.id
            )
            if (
                not participant_counted
                and event.registration_limit
                and CapacityService.registered_count(event) >= event.registration_limit
            ):
                raise PolicyViolation("Registration limit has been reached")

            for item_id, quantity in quantities.items():
                item = items[item_id]
                if not EventRepository.try_take_stock(item.id, quantity):
                    raise PolicyViolation(f"Insufficient stock for {item.name}")
                set_committed_value(item, "stock", item.stock - quantity)
        elif event.registration_limit and CapacityService.registered_count(event) >= event.registration_limit:
            raise PolicyViolation("Registration limit has been reached")

        if not participant_counted:
            RegistrationService._reserve_slot(event)

        registration.transition_to(RegistrationState.CONFIRMED)
        TicketService.issue(registration, event, registration.participant)
        if event.status == EventStatus.COMPLETED:
            registration.transition_to(RegistrationState.COMPLETED)

    @staticmethod
    def _reserve_slot(event: Event):
        if not EventRepository.try_reserve_slot(event.id):
            raise PolicyViolation("Registration limit has been reached")
        set_committed_value(event, "registration_count", event.registration_count + 1)

    @staticmethod
    def _validate_form_responses(event: Event, responses) -> dict:
        if responses is None:
            responses = {}
        if not isinstance(responses, dict):
            raise ValidationError("form_responses must be an object", ["form_responses"])

        missing = []
        for field in event.custom_form:
            value = responses.get(field.field_name)
            if field.required and value in (None, "", [], False):
                missing.append(field.field_name)
            elif value not in (None, "") and field.options and field.field_type == FormFieldType.DROPDOWN:
                if value not in field.options:
                    raise ValidationError(
                        f"Invalid choice for {field.field_name}", [field.field_name]
                    )
        if missing:
            raise MissingFieldsError(missing)
        return responses

    @staticmethod
    def _parse_selections(raw) -> List[dict]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValidationError("merchandise_selections must be a list", ["merchandise_selections"])

        lines = []
        for entry in raw:
            if not isinstance(entry, dict) or entry.get("item_id") in (None, ""):
                raise ValidationError("Each selection needs an item_id", ["merchandise_selections"])
            quantity = parse_int(entry.get("quantity", 0), "quantity", minimum=0)
            if quantity == 0:
                continue
            lines.append(
                {
                    "item_id": parse_int(entry["item_id"], "item_id", minimum=1),
                    "quantity": quantity,
                    "size": entry.get("size") or "",
                    "color": entry.get("color") or "",
                    "variant": entry.get("variant") or "",
                }
            )
        return lines

    @staticmethod
    def _quantities(lines) -> "OrderedDict[int, int]":
        totals = OrderedDict()
        for line in lines:
            totals[line["item_id"]] = totals.get(line["item_id"], 0) + line["quantity"]
        return totals

    @staticmethod
    def _check_option(allowed, value, field, item_name):
        if allowed and value and value not in allowed:
            raise ValidationError(f"Invalid {field} '{value}' for {item_name}", [field])
        if allowed and not value:
            raise MissingFieldsError([field])

    @staticmethod
    def _get_or_404(registration_id: int) -> Registration:
        registration = RegistrationRepository.get(registration_id)
        if not registration:
            raise NotFoundError(f"Registration with ID {registration_id} not found")
        return registration

    @staticmethod
    def _require_event_owner(event: Event, user: User):
        if not user.is_organizer() or event.organizer_id != user.id:
            raise UnauthorizedError("Not authorized to manage registrations for this event")
