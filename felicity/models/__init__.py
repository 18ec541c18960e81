from felicity.models.user import User
from felicity.models.event import Event, CustomFormField, MerchandiseItem
from felicity.models.registration import Registration, MerchandiseSelection
from felicity.models.enums import (
    UserRole,
    ParticipantType,
    EventType,
    Eligibility,
    EventStatus,
    FormFieldType,
    RegistrationState,
    RegistrationStatus,
    PaymentStatus,
)
