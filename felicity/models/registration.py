from felicity.extensions import db
from felicity.exceptions import PolicyViolation
from felicity.utils.dates import isoformat
from .enums import RegistrationState, RegistrationStatus, PaymentStatus

_STATUS_BY_STATE = {
    RegistrationState.AWAITING_PAYMENT: RegistrationStatus.PENDING_APPROVAL,
    RegistrationState.PAYMENT_SUBMITTED: RegistrationStatus.PENDING_APPROVAL,
    RegistrationState.CONFIRMED: RegistrationStatus.REGISTERED,
    RegistrationState.COMPLETED: RegistrationStatus.COMPLETED,
    RegistrationState.REJECTED: RegistrationStatus.REJECTED,
    RegistrationState.CANCELLED: RegistrationStatus.CANCELLED,
}

ALLOWED_TRANSITIONS = {
    RegistrationState.AWAITING_PAYMENT: {
        RegistrationState.PAYMENT_SUBMITTED,
        RegistrationState.CANCELLED,
    },
    RegistrationState.PAYMENT_SUBMITTED: {
        RegistrationState.CONFIRMED,
        RegistrationState.REJECTED,
        RegistrationState.CANCELLED,
    },
    RegistrationState.CONFIRMED: {
        RegistrationState.COMPLETED,
        RegistrationState.CANCELLED,
    },
    RegistrationState.COMPLETED: set(),
    RegistrationState.REJECTED: set(),
    RegistrationState.CANCELLED: set(),
}


def states_for_status(status: RegistrationStatus):
    return [state for state, derived in _STATUS_BY_STATE.items() if derived == status]


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    state = db.Column(db.Enum(RegistrationState), nullable=False)
    form_responses = db.Column(db.JSON, nullable=False, default=dict)
    ticket_id = db.Column(db.String(32), unique=True, nullable=True)
    qr_code = db.Column(db.Text, nullable=True)  # base64 data URL
    total_amount = db.Column(db.DECIMAL(10, 2), nullable=False, default=0)
    payment_proof = db.Column(db.String(1024), nullable=True)
    attendance = db.Column(db.Boolean, nullable=False, default=False)
    attendance_marked_at = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    created_at = db.Column(db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    event = db.relationship("Event", backref=db.backref("registrations", lazy="dynamic"))
    participant = db.relationship("User", backref=db.backref("registrations", lazy="dynamic"))
    merchandise_selections = db.relationship(
        "MerchandiseSelection",
        order_by="MerchandiseSelection.id",
        cascade="all, delete-orphan",
        backref="registration",
    )

    # Not unique: merchandise events allow several orders per participant
    __table_args__ = (db.Index("ix_registrations_event_participant", "event_id", "participant_id"),)

    @property
    def status(self) -> RegistrationStatus:
        return _STATUS_BY_STATE[self.state]

    @property
    def payment_status(self) -> PaymentStatus:
        if self.state == RegistrationState.PAYMENT_SUBMITTED:
            return PaymentStatus.PENDING
        if self.state == RegistrationState.REJECTED:
            return PaymentStatus.REJECTED
        if self.state in (RegistrationState.CONFIRMED, RegistrationState.COMPLETED) and self.payment_proof:
            return PaymentStatus.APPROVED
        return PaymentStatus.NONE

    def can_transition_to(self, new_state: RegistrationState) -> bool:
        return new_state in ALLOWED_TRANSITIONS[self.state]

    def transition_to(self, new_state: RegistrationState):
        if not self.can_transition_to(new_state):
            raise PolicyViolation(
                f"Cannot move registration from {self.status.value} to {_STATUS_BY_STATE[new_state].value}"
            )
        self.state = new_state

    def quantity_of(self, item_id) -> int:
        return sum(
            selection.quantity
            for selection in self.merchandise_selections
            if selection.item_id == item_id
        )

    def to_dict(self, include_qr=True):
        data = {
            "id": self.id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "form_responses": dict(self.form_responses or {}),
            "ticket_id": self.ticket_id,
            "total_amount": str(self.total_amount),
            "payment_proof": self.payment_proof,
            "merchandise_selections": [s.to_dict() for s in self.merchandise_selections],
            "attendance": self.attendance,
            "attendance_marked_at": isoformat(self.attendance_marked_at),
            "created_at": isoformat(self.created_at),
        }
        if include_qr:
            data["qr_code"] = self.qr_code
        return data

    def __repr__(self):
        return (
            f"Registration("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"participant_id={self.participant_id}, "
            f"state={self.state}, "
            f"ticket_id={self.ticket_id}"
            f")"
        )


class MerchandiseSelection(db.Model):
    __tablename__ = "merchandise_selections"

    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(
        db.Integer, db.ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False
    )
    item_id = db.Column(db.Integer, db.ForeignKey("merchandise_items.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    size = db.Column(db.String(50), nullable=False, default="")
    color = db.Column(db.String(50), nullable=False, default="")
    variant = db.Column(db.String(100), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.DECIMAL(10, 2), nullable=False)  # frozen at order time

    __table_args__ = (db.CheckConstraint("quantity > 0", name="check_selection_quantity_positive"),)

    def to_dict(self):
        return {
            "item_id": self.item_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "variant": self.variant,
            "quantity": self.quantity,
            "price": str(self.price),
        }
