from typing import List, Optional, Sequence

from sqlalchemy import func, update

from felicity.extensions import db
from felicity.models import Registration, MerchandiseSelection
from felicity.models.enums import RegistrationState


class RegistrationRepository:
    @staticmethod
    def get(registration_id: int) -> Optional[Registration]:
        return db.session.get(Registration, registration_id)

    @staticmethod
    def get_fresh(registration_id: int) -> Optional[Registration]:
        """Re-read a registration, discarding whatever the session had cached."""
        return (
            Registration.query.filter_by(id=registration_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def find_by_ticket(event_id: int, ticket_id: str) -> Optional[Registration]:
        return Registration.query.filter_by(event_id=event_id, ticket_id=ticket_id).first()

    @staticmethod
    def find_in_states(
        event_id: int, participant_id: int, states: Sequence[RegistrationState]
    ) -> Optional[Registration]:
        return (
            Registration.query.filter(
                Registration.event_id == event_id,
                Registration.participant_id == participant_id,
                Registration.state.in_(states),
            )
            .order_by(Registration.id)
            .first()
        )

    @staticmethod
    def list_for_participant(participant_id: int, event_id: Optional[int] = None) -> List[Registration]:
        query = Registration.query.filter(Registration.participant_id == participant_id)
        if event_id is not None:
            query = query.filter(Registration.event_id == event_id)
        return query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()

    @staticmethod
    def list_for_event(event_id: int, states: Optional[Sequence[RegistrationState]] = None) -> List[Registration]:
        query = Registration.query.filter(Registration.event_id == event_id)
        if states:
            query = query.filter(Registration.state.in_(states))
        return query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()

    @staticmethod
    def count_by_event_id_and_states(event_id: int, states: Sequence[RegistrationState]) -> int:
        """Count registration rows for an event with specific states."""
        return (
            Registration.query.filter(Registration.event_id == event_id)
            .filter(Registration.state.in_(states))
            .count()
        )

    @staticmethod
    def count_distinct_participants(event_id: int, states: Sequence[RegistrationState]) -> int:
        return (
            db.session.query(func.count(func.distinct(Registration.participant_id)))
            .filter(Registration.event_id == event_id, Registration.state.in_(states))
            .scalar()
        )

    @staticmethod
    def participant_has_other(
        event_id: int,
        participant_id: int,
        states: Sequence[RegistrationState],
        exclude_id: Optional[int] = None,
    ) -> bool:
        query = Registration.query.filter(
            Registration.event_id == event_id,
            Registration.participant_id == participant_id,
            Registration.state.in_(states),
        )
        if exclude_id is not None:
            query = query.filter(Registration.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    @staticmethod
    def sum_item_quantity(
        event_id: int,
        participant_id: int,
        item_id: int,
        states: Sequence[RegistrationState],
        exclude_id: Optional[int] = None,
    ) -> int:
        query = (
            db.session.query(func.coalesce(func.sum(MerchandiseSelection.quantity), 0))
            .join(Registration, MerchandiseSelection.registration_id == Registration.id)
            .filter(
                Registration.event_id == event_id,
                Registration.participant_id == participant_id,
                Registration.state.in_(states),
                MerchandiseSelection.item_id == item_id,
            )
        )
        if exclude_id is not None:
            query = query.filter(Registration.id != exclude_id)
        return int(query.scalar() or 0)

    @staticmethod
    def add(registration: Registration) -> Registration:
        db.session.add(registration)
        db.session.flush()
        return registration

    @staticmethod
    def submit_payment_proof(registration_id: int, proof: str) -> bool:
        """Attach proof only while the registration is still awaiting payment. Caller commits."""
        result = db.session.execute(
            update(Registration)
            .where(
                Registration.id == registration_id,
                Registration.state == RegistrationState.AWAITING_PAYMENT,
            )
            .values(payment_proof=proof, state=RegistrationState.PAYMENT_SUBMITTED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def complete_confirmed_for_event(event_id: int) -> List[int]:
        """Bulk-move confirmed registrations of an event to completed. Caller commits."""
        ids = [
            row.id
            for row in db.session.query(Registration.id).filter(
                Registration.event_id == event_id,
                Registration.state == RegistrationState.CONFIRMED,
            )
        ]
        if ids:
            db.session.execute(
                update(Registration)
                .where(
                    Registration.id.in_(ids),
                    Registration.state == RegistrationState.CONFIRMED,
                )
                .values(state=RegistrationState.COMPLETED)
                .execution_options(synchronize_session="fetch")
            )
        return ids

    @staticmethod
    def delete_by_event_id(event_id: int) -> int:
        """Deletes all registrations (and their selections) for a given event_id."""
        registrations = Registration.query.filter_by(event_id=event_id).all()
        for registration in registrations:
            db.session.delete(registration)
        db.session.flush()
        return len(registrations)
