from decimal import Decimal

import pytest

from felicity.exceptions import PolicyViolation, ValidationError
from felicity.extensions import db
from felicity.models import Event, MerchandiseItem, Registration
from felicity.models.enums import EventType, PaymentStatus, RegistrationState, RegistrationStatus
from felicity.services.capacity_service import CapacityService
from felicity.services.registration_service import RegistrationService

pytestmark = pytest.mark.usefixtures("app")


def _item(event, name):
    return MerchandiseItem.query.filter_by(event_id=event.id, name=name).one()


def _order(participant, event, **quantities):
    selections = [
        {"item_id": _item(event, name).id, "quantity": quantity}
        for name, quantity in quantities.items()
    ]
    return RegistrationService.create_registration(
        participant, event.id, {"merchandise_selections": selections}
    )


def _submit(registration, participant):
    return RegistrationService.upload_payment_proof(
        registration.id, participant, f"proofs/order-{registration.id}.png"
    )


def _stock(event, name):
    return _item(event, name).stock


class TestPlaceOrder:
    def test_order_waits_for_payment(self, participant, merch_event):
        """An order reserves nothing: no stock taken, no count, no ticket."""
        order = _order(participant, merch_event, Hoodie=2, Sticker=3)

        assert order.status == RegistrationStatus.PENDING_APPROVAL
        assert order.payment_status == PaymentStatus.NONE
        assert order.ticket_id is None
        assert order.total_amount == Decimal("1460")
        assert _stock(merch_event, "Hoodie") == 5
        assert db.session.get(Event, merch_event.id).registration_count == 0

    def test_lines_for_same_item_are_summed(self, participant, merch_event):
        hoodie = _item(merch_event, "Hoodie")

        with pytest.raises(PolicyViolation, match="Purchase limit exceeded for Hoodie"):
            RegistrationService.create_registration(
                participant,
                merch_event.id,
                {
                    "merchandise_selections": [
                        {"item_id": hoodie.id, "quantity": 2},
                        {"item_id": hoodie.id, "quantity": 2},
                    ]
                },
            )

    def test_needs_at_least_one_item(self, participant, merch_event):
        hoodie = _item(merch_event, "Hoodie")

        with pytest.raises(ValidationError, match="at least one item"):
            RegistrationService.create_registration(
                participant,
                merch_event.id,
                {"merchandise_selections": [{"item_id": hoodie.id, "quantity": 0}]},
            )

    def test_unknown_item(self, participant, merch_event):
        with pytest.raises(ValidationError, match="does not exist"):
            RegistrationService.create_registration(
                participant,
                merch_event.id,
                {"merchandise_selections": [{"item_id": 999, "quantity": 1}]},
            )

    def test_insufficient_stock(self, participant, merch_event):
        hoodie = _item(merch_event, "Hoodie")
        hoodie.stock = 1
        db.session.commit()

        with pytest.raises(PolicyViolation, match="Insufficient stock for Hoodie"):
            _order(participant, merch_event, Hoodie=2)

    def test_unpaid_order_blocks_new_order(self, participant, merch_event):
        _order(participant, merch_event, Sticker=1)

        with pytest.raises(PolicyViolation, match="unpaid order"):
            _order(participant, merch_event, Sticker=1)

    def test_purchase_limit_counts_pending_orders(self, participant, merch_event):
        """Limit 3: an order of 2 leaves room for 1 more, not 2."""
        first = _order(participant, merch_event, Hoodie=2)
        _submit(first, participant)

        with pytest.raises(PolicyViolation) as exc:
            _order(participant, merch_event, Hoodie=2)
        assert str(exc.value) == (
            "Purchase limit exceeded for Hoodie. Per-person limit: 3, "
            "Already ordered: 2, You can buy up to 1 more."
        )

        third = _order(participant, merch_event, Hoodie=1)
        assert third.status == RegistrationStatus.PENDING_APPROVAL

    def test_rejected_orders_free_the_quota(self, organizer, participant, merch_event):
        first = _order(participant, merch_event, Hoodie=3)
        _submit(first, participant)
        RegistrationService.set_payment_status(first.id, organizer, "rejected")

        second = _order(participant, merch_event, Hoodie=3)

        assert second.state == RegistrationState.AWAITING_PAYMENT

    def test_variant_must_be_offered(self, organizer, participant, make_event):
        event = make_event(
            organizer,
            type=EventType.MERCHANDISE,
            items=[{"name": "Tee", "stock": 10, "price": Decimal("300"), "sizes": ["S", "M"]}],
        )
        tee = _item(event, "Tee")

        with pytest.raises(ValidationError, match="Invalid size"):
            RegistrationService.create_registration(
                participant,
                event.id,
                {"merchandise_selections": [{"item_id": tee.id, "quantity": 1, "size": "XL"}]},
            )

        order = RegistrationService.create_registration(
            participant,
            event.id,
            {"merchandise_selections": [{"item_id": tee.id, "quantity": 1, "size": "M"}]},
        )
        assert order.merchandise_selections[0].size == "M"


class TestApproveOrder:
    def test_approval_takes_stock_and_issues_ticket(self, organizer, participant, merch_event):
        order = _order(participant, merch_event, Hoodie=2)
        _submit(order, participant)

        approved = RegistrationService.set_payment_status(order.id, organizer, "approved")

        assert approved.status == RegistrationStatus.REGISTERED
        assert approved.payment_status == PaymentStatus.APPROVED
        assert approved.ticket_id is not None
        assert approved.qr_code.startswith("data:image/png;base64,")
        assert _stock(merch_event, "Hoodie") == 3
        assert db.session.get(Event, merch_event.id).registration_count == 1

    def test_prices_frozen_at_order_time(self, organizer, participant, merch_event):
        order = _order(participant, merch_event, Hoodie=2)
        _item(merch_event, "Hoodie").price = Decimal("900")
        db.session.commit()
        _submit(order, participant)

        approved = RegistrationService.set_payment_status(order.id, organizer, "approved")

        assert approved.total_amount == Decimal("1400")
        assert approved.merchandise_selections[0].price == Decimal("700")

    def test_stock_never_goes_negative(self, organizer, participant, other_participant, merch_event):
        """Both orders pass the order-time check; only one can be approved."""
        first = _order(participant, merch_event, Hoodie=3)
        second = _order(other_participant, merch_event, Hoodie=3)
        _submit(first, participant)
        _submit(second, other_participant)

        RegistrationService.set_payment_status(first.id, organizer, "approved")
        with pytest.raises(PolicyViolation, match="Insufficient stock for Hoodie"):
            RegistrationService.set_payment_status(second.id, organizer, "approved")

        assert _stock(merch_event, "Hoodie") == 2
        fresh = db.session.get(Registration, second.id)
        assert fresh.status == RegistrationStatus.PENDING_APPROVAL
        assert fresh.payment_status == PaymentStatus.PENDING

    def test_approval_quota_uses_only_other_approved_orders(self, organizer, participant, merch_event):
        """Pending orders do not count against the order under review."""
        first = _order(participant, merch_event, Hoodie=2)
        _submit(first, participant)
        second = _order(participant, merch_event, Hoodie=1)
        _submit(second, participant)
        hoodie = _item(merch_event, "Hoodie")

        assert CapacityService.ordered_quantity(merch_event, participant.id, hoodie.id) == 3
        assert CapacityService.approved_quantity(merch_event, second, hoodie.id) == 0

        RegistrationService.set_payment_status(second.id, organizer, "approved")

        assert CapacityService.approved_quantity(merch_event, first, hoodie.id) == 1
        RegistrationService.set_payment_status(first.id, organizer, "approved")
        assert _stock(merch_event, "Hoodie") == 2

    def test_approval_rechecks_purchase_limit(self, organizer, participant, merch_event):
        """If the limit dropped since ordering, approval refuses without side effects."""
        first = _order(participant, merch_event, Hoodie=2)
        _submit(first, participant)
        second = _order(participant, merch_event, Hoodie=1)
        _submit(second, participant)
        RegistrationService.set_payment_status(first.id, organizer, "approved")
        _item(merch_event, "Hoodie").purchase_limit = 2
        db.session.commit()

        with pytest.raises(PolicyViolation, match="exceed the purchase limit for Hoodie"):
            RegistrationService.set_payment_status(second.id, organizer, "approved")

        assert _stock(merch_event, "Hoodie") == 3
        assert db.session.get(Event, merch_event.id).registration_count == 1
        assert db.session.get(Registration, second.id).state == RegistrationState.PAYMENT_SUBMITTED

    def test_double_approval_takes_stock_once(self, organizer, participant, merch_event):
        order = _order(participant, merch_event, Hoodie=1)
        _submit(order, participant)
        RegistrationService.set_payment_status(order.id, organizer, "approved")

        with pytest.raises(PolicyViolation):
            RegistrationService.set_payment_status(order.id, organizer, "approved")

        assert _stock(merch_event, "Hoodie") == 4

    def test_reject_without_proof(self, organizer, participant, merch_event):
        order = _order(participant, merch_event, Sticker=1)

        with pytest.raises(PolicyViolation, match="no proof uploaded"):
            RegistrationService.set_payment_status(order.id, organizer, "rejected")

        assert db.session.get(Registration, order.id).status == RegistrationStatus.PENDING_APPROVAL

    def test_confirmed_order_cannot_be_cancelled(self, organizer, participant, merch_event):
        order = _order(participant, merch_event, Sticker=1)
        _submit(order, participant)
        RegistrationService.set_payment_status(order.id, organizer, "approved")

        with pytest.raises(PolicyViolation, match="cannot be cancelled"):
            RegistrationService.cancel_registration(order.id, participant)


class TestDistinctParticipantCount:
    def test_count_is_people_not_orders(self, organizer, participant, other_participant, merch_event):
        for _ in range(2):
            order = _order(participant, merch_event, Sticker=1)
            _submit(order, participant)
            RegistrationService.set_payment_status(order.id, organizer, "approved")
        order = _order(other_participant, merch_event, Sticker=2)
        _submit(order, other_participant)
        RegistrationService.set_payment_status(order.id, organizer, "approved")

        event = db.session.get(Event, merch_event.id)
        assert Registration.query.filter_by(event_id=event.id).count() == 3
        assert event.registration_count == 2
        assert CapacityService.registered_participant_count(event) == 2
        assert CapacityService.registered_row_count(event) == 3

    def test_counted_participant_approved_at_capacity(
        self, organizer, participant, other_participant, merch_event
    ):
        """At the limit, a participant who already counts can still get a further order approved."""
        merch_event.registration_limit = 2
        db.session.commit()

        first = _order(participant, merch_event, Sticker=1)
        _submit(first, participant)
        RegistrationService.set_payment_status(first.id, organizer, "approved")
        repeat = _order(participant, merch_event, Sticker=1)
        _submit(repeat, participant)
        newcomer = _order(other_participant, merch_event, Sticker=1)
        _submit(newcomer, other_participant)
        RegistrationService.set_payment_status(newcomer.id, organizer, "approved")

        approved = RegistrationService.set_payment_status(repeat.id, organizer, "approved")

        assert approved.status == RegistrationStatus.REGISTERED
        assert db.session.get(Event, merch_event.id).registration_count == 2

    def test_new_participant_refused_at_capacity(
        self, organizer, participant, other_participant, merch_event
    ):
        merch_event.registration_limit = 1
        db.session.commit()

        late = _order(other_participant, merch_event, Sticker=1)
        _submit(late, other_participant)
        first = _order(participant, merch_event, Sticker=1)
        _submit(first, participant)
        RegistrationService.set_payment_status(first.id, organizer, "approved")

        with pytest.raises(PolicyViolation, match="Registration limit has been reached"):
            RegistrationService.set_payment_status(late.id, organizer, "approved")
        assert _stock(merch_event, "Sticker") == 99


class TestItemLimits:
    def test_remaining_quota(self, participant, merch_event):
        _order(participant, merch_event, Hoodie=2)
        hoodie = _item(merch_event, "Hoodie")
        sticker = _item(merch_event, "Sticker")

        limits = RegistrationService.get_item_limits(merch_event.id, participant)

        assert limits[str(hoodie.id)] == {"purchase_limit": 3, "ordered": 2, "remaining": 1}
        assert limits[str(sticker.id)] == {"purchase_limit": 10, "ordered": 0, "remaining": 10}

    def test_only_for_merchandise(self, organizer, participant, make_event):
        event = make_event(organizer)

        with pytest.raises(PolicyViolation, match="merchandise events"):
            RegistrationService.get_item_limits(event.id, participant)
