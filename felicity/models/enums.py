from enum import Enum


class UserRole(Enum):
    PARTICIPANT = "participant"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ParticipantType(Enum):
    IIIT = "iiit"
    NON_IIIT = "non-iiit"


class EventType(Enum):
    NORMAL = "normal"
    MERCHANDISE = "merchandise"


class Eligibility(Enum):
    ALL = "all"
    IIIT = "iiit"
    NON_IIIT = "non-iiit"


class EventStatus(Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class FormFieldType(Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    DROPDOWN = "dropdown"
    CHECKBOX = "checkbox"
    FILE = "file"


class RegistrationState(Enum):
    """Single lifecycle state of a registration.

    The public ``status`` / ``payment_status`` pair is derived from this, so
    combinations such as registered + rejected payment cannot be stored.
    """

    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_SUBMITTED = "payment_submitted"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RegistrationStatus(Enum):
    REGISTERED = "registered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    PENDING_APPROVAL = "pending_approval"


class PaymentStatus(Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# States that hold a place in the event (count towards capacity)
COUNTED_STATES = (RegistrationState.CONFIRMED, RegistrationState.COMPLETED)

# States that are still "live" for duplicate and quota checks
LIVE_STATES = (
    RegistrationState.AWAITING_PAYMENT,
    RegistrationState.PAYMENT_SUBMITTED,
    RegistrationState.CONFIRMED,
    RegistrationState.COMPLETED,
)
