"""Capacity and purchase-quota accounting.

Normal events count registration rows; merchandise events count distinct
participants, because one participant may hold several confirmed orders.

Quota is evaluated at two moments with deliberately different source sets:

* order time  -- ``ordered_quantity``: every live order of the participant
  (awaiting payment, submitted, confirmed, completed), so pending orders
  reserve quota optimistically;
* approval time -- ``approved_quantity``: only the participant's *other*
  orders that were already approved, so the order under review is judged
  against what is actually committed.

Keep these as two functions; folding them into one with a flag is how the
asymmetry gets lost.
"""
from typing import Dict

from felicity.models import Event, Registration, User
from felicity.models.enums import COUNTED_STATES, LIVE_STATES
from felicity.repositories.registration_repository import RegistrationRepository


class CapacityService:
    @staticmethod
    def registered_row_count(event: Event) -> int:
        return RegistrationRepository.count_by_event_id_and_states(event.id, COUNTED_STATES)

    @staticmethod
    def registered_participant_count(event: Event) -> int:
        return RegistrationRepository.count_distinct_participants(event.id, COUNTED_STATES)

    @staticmethod
    def registered_count(event: Event) -> int:
        if event.is_merchandise:
            return CapacityService.registered_participant_count(event)
        return CapacityService.registered_row_count(event)

    @staticmethod
    def is_participant_counted(event: Event, participant_id: int, exclude_id: int = None) -> bool:
        """Whether the participant already holds a counted place in the event."""
        return RegistrationRepository.participant_has_other(
            event.id, participant_id, COUNTED_STATES, exclude_id=exclude_id
        )

    @staticmethod
    def ordered_quantity(event: Event, participant_id: int, item_id: int) -> int:
        """Order-time quota usage: all non-cancelled, non-rejected orders."""
        return RegistrationRepository.sum_item_quantity(
            event.id, participant_id, item_id, LIVE_STATES
        )

    @staticmethod
    def approved_quantity(event: Event, registration: Registration, item_id: int) -> int:
        """Approval-time quota usage: other orders that were already approved."""
        return RegistrationRepository.sum_item_quantity(
            event.id,
            registration.participant_id,
            item_id,
            COUNTED_STATES,
            exclude_id=registration.id,
        )

    @staticmethod
    def remaining_quota(event: Event, participant: User) -> Dict[str, dict]:
        limits = {}
        for item in event.merchandise_items:
            ordered = CapacityService.ordered_quantity(event, participant.id, item.id)
            limits[str(item.id)] = {
                "purchase_limit": item.purchase_limit,
                "ordered": ordered,
                "remaining": max(0, item.purchase_limit - ordered),
            }
        return limits
