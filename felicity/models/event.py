from felicity.extensions import db
from felicity.utils.dates import as_utc, isoformat
from .enums import EventType, EventStatus, Eligibility, FormFieldType


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    type = db.Column(db.Enum(EventType), nullable=False)
    organizer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    eligibility = db.Column(db.Enum(Eligibility), nullable=False, default=Eligibility.ALL)
    start_date = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    end_date = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    registration_deadline = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    registration_limit = db.Column(db.Integer, nullable=False, default=0)  # 0 = unlimited
    registration_count = db.Column(db.Integer, nullable=False, default=0)
    registration_fee = db.Column(db.DECIMAL(10, 2), nullable=False, default=0)
    tags = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.Enum(EventStatus), nullable=False, default=EventStatus.DRAFT, index=True)
    form_locked = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organizer = db.relationship("User", backref=db.backref("organized_events", lazy="dynamic"))
    custom_form = db.relationship(
        "CustomFormField",
        order_by="CustomFormField.order",
        cascade="all, delete-orphan",
        backref="event",
    )
    merchandise_items = db.relationship(
        "MerchandiseItem",
        order_by="MerchandiseItem.id",
        cascade="all, delete-orphan",
        backref="event",
    )

    __table_args__ = (
        db.CheckConstraint("registration_limit >= 0", name="check_event_registration_limit"),
        db.CheckConstraint("registration_count >= 0", name="check_event_registration_count"),
    )

    @property
    def is_merchandise(self):
        return self.type == EventType.MERCHANDISE

    @property
    def is_paid(self):
        return self.type == EventType.NORMAL and (self.registration_fee or 0) > 0

    def has_started(self, now):
        return self.start_date is not None and as_utc(self.start_date) <= now

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "organizer_id": self.organizer_id,
            "eligibility": self.eligibility.value,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "registration_deadline": isoformat(self.registration_deadline),
            "registration_limit": self.registration_limit,
            "registration_count": self.registration_count,
            "registration_fee": str(self.registration_fee) if self.registration_fee is not None else "0",
            "tags": list(self.tags or []),
            "status": self.status.value,
            "form_locked": self.form_locked,
            "custom_form": [field.to_dict() for field in self.custom_form],
            "merchandise_items": [item.to_dict() for item in self.merchandise_items],
        }

    def __repr__(self):
        return f"<Event id={self.id} type={self.type} status={self.status}>"


class CustomFormField(db.Model):
    __tablename__ = "custom_form_fields"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    field_name = db.Column(db.String(255), nullable=False)
    field_type = db.Column(db.Enum(FormFieldType), nullable=False)
    required = db.Column(db.Boolean, nullable=False, default=False)
    options = db.Column(db.JSON, nullable=False, default=list)  # dropdown choices
    order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "field_name": self.field_name,
            "field_type": self.field_type.value,
            "required": self.required,
            "options": list(self.options or []),
            "order": self.order,
        }


class MerchandiseItem(db.Model):
    __tablename__ = "merchandise_items"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    sizes = db.Column(db.JSON, nullable=False, default=list)
    colors = db.Column(db.JSON, nullable=False, default=list)
    variants = db.Column(db.JSON, nullable=False, default=list)
    stock = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.DECIMAL(10, 2), nullable=False, default=0)
    purchase_limit = db.Column(db.Integer, nullable=False, default=1)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="check_item_stock_non_negative"),
        db.CheckConstraint("purchase_limit >= 1", name="check_item_purchase_limit"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sizes": list(self.sizes or []),
            "colors": list(self.colors or []),
            "variants": list(self.variants or []),
            "stock": self.stock,
            "price": str(self.price),
            "purchase_limit": self.purchase_limit,
        }

    def __repr__(self):
        return f"<MerchandiseItem id={self.id} event_id={self.event_id} stock={self.stock}>"
