from typing import Dict, List, Optional

from sqlalchemy import or_, update

from felicity.extensions import db
from felicity.models import Event, MerchandiseItem
from felicity.models.enums import EventStatus, EventType


class EventRepository:
    @staticmethod
    def get_events(statuses: List[EventStatus], event_type: Optional[EventType] = None):
        query = Event.query.filter(Event.status.in_(statuses))
        if event_type is not None:
            query = query.filter(Event.type == event_type)
        return query.order_by(Event.created_at.desc(), Event.id.desc()).all()

    @staticmethod
    def get_event(event_id: int) -> Event:
        return db.session.get(Event, event_id)

    @staticmethod
    def get_event_for_update(event_id: int) -> Event:
        """Load the event row locked for the rest of the transaction.

        Every critical section that touches registration_count or item stock
        for an event starts here, so two of them on the same event run one
        after the other on databases that support row locks.
        """
        return (
            Event.query.filter_by(id=event_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def find_due_for_reconcile(now) -> List[Event]:
        return (
            Event.query.filter(
                Event.status.in_(
                    [EventStatus.PUBLISHED, EventStatus.CLOSED, EventStatus.ONGOING]
                )
            )
            .filter(Event.start_date.isnot(None))
            .filter(Event.start_date <= now)
            .order_by(Event.id)
            .all()
        )

    @staticmethod
    def create_event(event: Event) -> Event:
        db.session.add(event)
        db.session.commit()
        return event

    @staticmethod
    def delete_event(event: Event):
        db.session.delete(event)
        db.session.commit()

    # The methods below run inside the caller's transaction and do not commit.

    @staticmethod
    def transition_status(event_id: int, from_status: EventStatus, to_status: EventStatus) -> bool:
        """Move an event between statuses only if it is still in ``from_status``."""
        result = db.session.execute(
            update(Event)
            .where(Event.id == event_id, Event.status == from_status)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def try_reserve_slot(event_id: int) -> bool:
        """Increment registration_count unless the limit is already reached."""
        result = db.session.execute(
            update(Event)
            .where(Event.id == event_id)
            .where(
                or_(
                    Event.registration_limit == 0,
                    Event.registration_count < Event.registration_limit,
                )
            )
            .values(registration_count=Event.registration_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def release_slot(event_id: int) -> bool:
        result = db.session.execute(
            update(Event)
            .where(Event.id == event_id, Event.registration_count > 0)
            .values(registration_count=Event.registration_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def try_take_stock(item_id: int, quantity: int) -> bool:
        """Decrement stock by ``quantity`` unless that would make it negative."""
        result = db.session.execute(
            update(MerchandiseItem)
            .where(MerchandiseItem.id == item_id, MerchandiseItem.stock >= quantity)
            .values(stock=MerchandiseItem.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def get_items_for_update(event_id: int) -> Dict[int, MerchandiseItem]:
        """Fresh, locked copies of an event's items keyed by id."""
        items = (
            MerchandiseItem.query.filter_by(event_id=event_id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        return {item.id: item for item in items}
