from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from felicity import create_app
from felicity.extensions import db
from felicity.models import (
    CustomFormField,
    Event,
    MerchandiseItem,
    User,
)
from felicity.models.enums import (
    Eligibility,
    EventStatus,
    EventType,
    FormFieldType,
    ParticipantType,
    UserRole,
)
from felicity.utils.dates import utcnow


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(role=UserRole.PARTICIPANT, participant_type=ParticipantType.IIIT, **kwargs):
        counter["n"] += 1
        user = User(
            email=kwargs.pop("email", f"user{counter['n']}@felicity.test"),
            first_name=kwargs.pop("first_name", f"User{counter['n']}"),
            last_name=kwargs.pop("last_name", "Test"),
            role=role,
            participant_type=participant_type if role == UserRole.PARTICIPANT else None,
            **kwargs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def organizer(make_user):
    return make_user(role=UserRole.ORGANIZER, organizer_name="Dance Club")


@pytest.fixture
def participant(make_user):
    return make_user()


@pytest.fixture
def other_participant(make_user):
    return make_user()


@pytest.fixture
def make_event(app):
    """Insert an event directly, bypassing the lifecycle rules.

    Defaults to a free, published normal event starting in two days.
    """

    def _make_event(organizer, **kwargs):
        now = utcnow()
        items = kwargs.pop("items", [])
        form = kwargs.pop("form", [])
        event = Event(
            name=kwargs.pop("name", "Felicity Night"),
            description=kwargs.pop("description", ""),
            type=kwargs.pop("type", EventType.NORMAL),
            organizer_id=organizer.id,
            eligibility=kwargs.pop("eligibility", Eligibility.ALL),
            start_date=kwargs.pop("start_date", now + timedelta(days=2)),
            end_date=kwargs.pop("end_date", now + timedelta(days=3)),
            registration_deadline=kwargs.pop("registration_deadline", now + timedelta(days=1)),
            registration_limit=kwargs.pop("registration_limit", 0),
            registration_count=kwargs.pop("registration_count", 0),
            registration_fee=kwargs.pop("registration_fee", Decimal("0")),
            tags=kwargs.pop("tags", []),
            status=kwargs.pop("status", EventStatus.PUBLISHED),
            form_locked=kwargs.pop("form_locked", False),
        )
        for field in form:
            event.custom_form.append(CustomFormField(**field))
        for item in items:
            event.merchandise_items.append(MerchandiseItem(**item))
        db.session.add(event)
        db.session.commit()
        return event

    return _make_event


@pytest.fixture
def merch_event(make_event, organizer):
    return make_event(
        organizer,
        name="Felicity Merch",
        type=EventType.MERCHANDISE,
        items=[
            {"name": "Hoodie", "stock": 5, "price": Decimal("700"), "purchase_limit": 3},
            {"name": "Sticker", "stock": 100, "price": Decimal("20"), "purchase_limit": 10},
        ],
    )


@pytest.fixture
def required_form():
    return [
        {"field_name": "Team name", "field_type": FormFieldType.TEXT, "required": True, "order": 0},
        {
            "field_name": "T-shirt size",
            "field_type": FormFieldType.DROPDOWN,
            "required": False,
            "options": ["S", "M", "L"],
            "order": 1,
        },
    ]


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
