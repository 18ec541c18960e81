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
from felicity.models import CustomFormField, Event, MerchandiseItem, User
from felicity.models.enums import (
    Eligibility,
    EventStatus,
    EventType,
    FormFieldType,
)
from felicity.repositories.event_repository import EventRepository
from felicity.repositories.registration_repository import RegistrationRepository
from felicity.utils.dates import as_utc, utcnow
from felicity.utils.parsing import (
    parse_date_field,
    parse_decimal,
    parse_enum,
    parse_int,
    parse_string_list,
)

DATE_FIELDS = ("start_date", "end_date", "registration_deadline")

# Everything an organizer may send while the event is still a draft
DRAFT_EDITABLE_FIELDS = (
    "name",
    "description",
    "eligibility",
    "start_date",
    "end_date",
    "registration_deadline",
    "registration_limit",
    "registration_fee",
    "tags",
    "custom_form",
    "merchandise_items",
    "status",
)
PUBLISHED_EDITABLE_FIELDS = ("description", "registration_deadline", "registration_limit", "status")
LOCKED_EDITABLE_FIELDS = ("status",)

PUBLIC_STATUSES = [EventStatus.PUBLISHED, EventStatus.ONGOING]


class EventService:
    @staticmethod
    def get_events(event_type: Optional[str] = None) -> List[Event]:
        parsed_type = parse_enum(EventType, event_type, "type") if event_type else None
        return EventRepository.get_events(PUBLIC_STATUSES, parsed_type)

    @staticmethod
    def get_event(event_id: int, now=None) -> Event:
        """Load an event, first bringing its status up to date with the clock."""
        event = EventService._get_or_404(event_id)
        try:
            if EventService.reconcile(event, now or utcnow()):
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return event

    @staticmethod
    def create_event(data: dict, organizer: User) -> Event:
        if not organizer.is_organizer():
            raise UnauthorizedError("Only organizers can create events")

        missing = [f for f in ("name", "type") if not data.get(f) or not str(data.get(f)).strip()]
        if missing:
            raise MissingFieldsError(missing)

        event_type = parse_enum(EventType, data["type"], "type")
        event = Event(
            name=data["name"].strip(),
            description=data.get("description") or "",
            type=event_type,
            organizer_id=organizer.id,
            status=EventStatus.DRAFT,
            registration_count=0,
            form_locked=False,
            eligibility=Eligibility.ALL,
            registration_limit=0,
            registration_fee=Decimal("0"),
            tags=[],
        )
        EventService._apply_fields(event, data, DRAFT_EDITABLE_FIELDS, creating=True)
        EventService._validate_dates(event.start_date, event.end_date, event.registration_deadline)

        event = EventRepository.create_event(event)
        current_app.logger.info(
            f"Organizer {organizer.id} created {event_type.value} event {event.id} ({event.name})"
        )
        return event

    @staticmethod
    def update_event(event_id: int, data: dict, organizer: User) -> Event:
        event = EventService.get_event(event_id)
        EventService._require_owner(event, organizer)
        if not data:
            raise ValidationError("No data provided")

        try:
            if "type" in data and data["type"] != event.type.value:
                raise PolicyViolation("Event type cannot be changed after creation")
            fields = {k: v for k, v in data.items() if k not in ("id", "type", "organizer_id")}

            if event.status == EventStatus.DRAFT:
                editable = DRAFT_EDITABLE_FIELDS
            elif event.status == EventStatus.PUBLISHED:
                editable = PUBLISHED_EDITABLE_FIELDS
            else:
                editable = LOCKED_EDITABLE_FIELDS

            forbidden = sorted(k for k in fields if k not in editable)
            if forbidden:
                if event.status == EventStatus.PUBLISHED:
                    message = (
                        "Only description, registration deadline, registration limit "
                        "and status can be edited on a published event"
                    )
                elif event.status == EventStatus.DRAFT:
                    message = f"Unknown or read-only fields: {', '.join(forbidden)}"
                else:
                    message = "Only status changes are allowed for ongoing/closed/completed events"
                raise PolicyViolation(message)

            requested_status = fields.pop("status", None)
            EventService._apply_fields(event, fields, editable)
            EventService._validate_dates(event.start_date, event.end_date, event.registration_deadline)

            if requested_status is not None:
                target = parse_enum(EventStatus, requested_status, "status")
                if target != event.status:
                    # Status only moves through the controlled transitions
                    db.session.flush()
                    if target == EventStatus.CLOSED:
                        EventService._close(event)
                    elif target == EventStatus.PUBLISHED:
                        EventService._publish(event)
                    else:
                        raise PolicyViolation(
                            f"Cannot change status from {event.status.value} to {target.value}; "
                            "it is updated automatically from the event dates"
                        )

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f"Organizer {organizer.id} updated event {event.id}")
        return event

    @staticmethod
    def publish_event(event_id: int, organizer: User) -> Event:
        event = EventService._get_or_404(event_id)
        EventService._require_owner(event, organizer)
        try:
            EventService._publish(event)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        current_app.logger.info(f"Event {event.id} published by organizer {organizer.id}")
        return event

    @staticmethod
    def close_event(event_id: int, organizer: User) -> Event:
        event = EventService.get_event(event_id)
        EventService._require_owner(event, organizer)
        try:
            EventService._close(event)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        current_app.logger.info(f"Event {event.id} closed by organizer {organizer.id}")
        return event

    @staticmethod
    def delete_event(event_id: int, organizer: User):
        event = EventService._get_or_404(event_id)
        EventService._require_owner(event, organizer)
        if event.status != EventStatus.DRAFT:
            raise PolicyViolation("Only draft events can be deleted")

        try:
            # Drafts should not have registrations, clean up any strays anyway
            removed = RegistrationRepository.delete_by_event_id(event.id)
            if removed:
                current_app.logger.warning(
                    f"Deleted {removed} orphan registrations of draft event {event.id}"
                )
            EventRepository.delete_event(event)
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error deleting event {event_id}: {str(e)}")
            raise
        current_app.logger.info(f"Draft event {event_id} deleted by organizer {organizer.id}")

    @staticmethod
    def reconcile(event: Event, now) -> Optional[dict]:
        """Advance an event's status from its dates. Does not commit.

        Shared by the periodic sweep and the single-event read path. The
        status change is a conditional update on the status we observed, so
        when two reconcilers race only one of them applies the transition and
        its side effects; the other becomes a no-op.
        """
        now = as_utc(now)
        start = as_utc(event.start_date)
        end = as_utc(event.end_date)
        current = event.status

        target = None
        if current in (EventStatus.PUBLISHED, EventStatus.CLOSED, EventStatus.ONGOING):
            if end is not None and end <= now:
                target = EventStatus.COMPLETED
            elif (
                current in (EventStatus.PUBLISHED, EventStatus.CLOSED)
                and start is not None
                and start <= now
            ):
                target = EventStatus.ONGOING
        if target is None:
            return None

        if not EventRepository.transition_status(event.id, current, target):
            db.session.refresh(event)
            return None
        set_committed_value(event, "status", target)

        completed = []
        if target == EventStatus.COMPLETED:
            completed = RegistrationRepository.complete_confirmed_for_event(event.id)

        current_app.logger.info(
            f"Event {event.id} moved from {current.value} to {target.value}"
            + (f", completed {len(completed)} registrations" if completed else "")
        )
        return {
            "event_id": event.id,
            "from": current.value,
            "to": target.value,
            "registrations": completed,
        }

    @staticmethod
    def sweep_statuses(now=None) -> dict:
        """Reconcile every event whose dates may have moved it on. Idempotent."""
        now = as_utc(now or utcnow())
        transitioned = {"events": [], "registrations": []}

        for event in EventRepository.find_due_for_reconcile(now):
            event_id = event.id
            try:
                result = EventService.reconcile(event, now)
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                current_app.logger.error(
                    f"Status sweep failed for event {event_id}: {str(e)}", exc_info=True
                )
                continue
            if result:
                transitioned["events"].append(result["event_id"])
                transitioned["registrations"].extend(result["registrations"])

        if transitioned["events"]:
            current_app.logger.info(
                f"Status sweep transitioned events {transitioned['events']}"
            )
        return transitioned

    @staticmethod
    def _publish(event: Event):
        if event.status != EventStatus.DRAFT:
            raise PolicyViolation("Only draft events can be published")
        if not event.start_date or not event.end_date:
            raise PolicyViolation("Start date and end date are required before publishing")
        if event.is_merchandise and not event.merchandise_items:
            raise PolicyViolation(
                "Merchandise events must have at least one merchandise item before publishing"
            )
        if not EventRepository.transition_status(event.id, EventStatus.DRAFT, EventStatus.PUBLISHED):
            raise PolicyViolation("Only draft events can be published")
        set_committed_value(event, "status", EventStatus.PUBLISHED)

    @staticmethod
    def _close(event: Event):
        if event.status != EventStatus.PUBLISHED or not EventRepository.transition_status(
            event.id, EventStatus.PUBLISHED, EventStatus.CLOSED
        ):
            raise PolicyViolation(
                "Only published events can be closed. Ongoing events cannot be closed."
            )
        set_committed_value(event, "status", EventStatus.CLOSED)

    @staticmethod
    def _get_or_404(event_id: int) -> Event:
        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError(f"Event with ID {event_id} not found")
        return event

    @staticmethod
    def _require_owner(event: Event, user: User):
        if not user.is_organizer() or event.organizer_id != user.id:
            raise UnauthorizedError("Not authorized to manage this event")

    @staticmethod
    def _validate_dates(start, end, deadline):
        start, end, deadline = as_utc(start), as_utc(end), as_utc(deadline)
        if start and end and start >= end:
            raise ValidationError("Start date must be before end date", ["start_date", "end_date"])
        if deadline and end and deadline >= end:
            raise ValidationError(
                "Registration deadline must be before end date", ["registration_deadline"]
            )
        if deadline and start and deadline > start:
            raise ValidationError(
                "Registration deadline must be on or before start date", ["registration_deadline"]
            )

    @staticmethod
    def _apply_fields(event: Event, data: dict, editable, creating=False):
        for field in editable:
            if field not in data or field == "status":
                continue
            value = data[field]

            if field in DATE_FIELDS:
                setattr(event, field, parse_date_field(value, field))
            elif field == "name":
                if not value or not str(value).strip():
                    raise MissingFieldsError(["name"])
                event.name = str(value).strip()
            elif field == "description":
                event.description = value or ""
            elif field == "eligibility":
                event.eligibility = parse_enum(Eligibility, value, "eligibility")
            elif field == "registration_limit":
                limit = parse_int(value, "registration_limit", minimum=0)
                if limit != 0 and limit < (event.registration_count or 0):
                    raise PolicyViolation(
                        f"Registration limit cannot be lower than the {event.registration_count} "
                        "registrations already confirmed"
                    )
                event.registration_limit = limit
            elif field == "registration_fee":
                fee = parse_decimal(value, "registration_fee")
                # Merchandise events never carry an event-level fee
                event.registration_fee = Decimal("0") if event.is_merchandise else fee
            elif field == "tags":
                event.tags = parse_string_list(value, "tags")
            elif field == "custom_form":
                EventService._replace_custom_form(event, value, creating)
            elif field == "merchandise_items":
                EventService._replace_merchandise_items(event, value)

    @staticmethod
    def _replace_custom_form(event: Event, fields, creating):
        if event.is_merchandise:
            if fields:
                raise ValidationError("Merchandise events do not have a registration form", ["custom_form"])
            return
        if event.form_locked and not creating:
            raise PolicyViolation("The registration form is locked because registrations exist")
        if not isinstance(fields, list):
            raise ValidationError("custom_form must be a list", ["custom_form"])

        parsed = []
        for index, raw in enumerate(fields or []):
            if not isinstance(raw, dict) or not raw.get("field_name"):
                raise ValidationError(f"Form field {index} needs a field_name", ["custom_form"])
            field_type = parse_enum(FormFieldType, raw.get("field_type"), "field_type")
            options = parse_string_list(raw.get("options"), "options")
            if field_type == FormFieldType.DROPDOWN and not options:
                raise ValidationError(
                    f"Dropdown field '{raw['field_name']}' needs options", ["custom_form"]
                )
            parsed.append(
                CustomFormField(
                    field_name=raw["field_name"],
                    field_type=field_type,
                    required=bool(raw.get("required", False)),
                    options=options,
                    order=parse_int(raw.get("order", index), "order", minimum=0),
                )
            )
        event.custom_form = parsed

    @staticmethod
    def _replace_merchandise_items(event: Event, items):
        if not event.is_merchandise:
            if items:
                raise ValidationError("Only merchandise events can list items", ["merchandise_items"])
            return
        if not isinstance(items, list):
            raise ValidationError("merchandise_items must be a list", ["merchandise_items"])

        parsed = []
        for index, raw in enumerate(items):
            if not isinstance(raw, dict) or not raw.get("name"):
                raise ValidationError(f"Item {index} needs a name", ["merchandise_items"])
            parsed.append(
                MerchandiseItem(
                    name=raw["name"],
                    description=raw.get("description") or "",
                    sizes=parse_string_list(raw.get("sizes"), "sizes"),
                    colors=parse_string_list(raw.get("colors"), "colors"),
                    variants=parse_string_list(raw.get("variants"), "variants"),
                    stock=parse_int(raw.get("stock", 0), "stock", minimum=0),
                    price=parse_decimal(raw.get("price", 0), "price"),
                    purchase_limit=parse_int(raw.get("purchase_limit", 1), "purchase_limit", minimum=1),
                )
            )
        event.merchandise_items = parsed
