"""
Script to create demo accounts for local development of the Felicity API.

Tokens are normally issued by the identity service; this prints short-lived
access tokens so the API can be exercised with curl.
"""

from flask_jwt_extended import create_access_token

from felicity import create_app
from felicity.extensions import db
from felicity.models import User, UserRole, ParticipantType
from felicity.repositories.user_repository import UserRepository

DEMO_ACCOUNTS = [
    {
        "email": "organizer@felicity.local",
        "first_name": "Demo",
        "last_name": "Organizer",
        "role": UserRole.ORGANIZER,
        "organizer_name": "Felicity Core Team",
    },
    {
        "email": "student@felicity.local",
        "first_name": "Iiit",
        "last_name": "Student",
        "role": UserRole.PARTICIPANT,
        "participant_type": ParticipantType.IIIT,
    },
    {
        "email": "guest@felicity.local",
        "first_name": "Visiting",
        "last_name": "Guest",
        "role": UserRole.PARTICIPANT,
        "participant_type": ParticipantType.NON_IIIT,
    },
]


def main():
    """Create the demo accounts if missing and print a token for each."""
    app = create_app()
    with app.app_context():
        db.create_all()
        for account in DEMO_ACCOUNTS:
            user = UserRepository.find_by_email(account["email"])
            if user:
                print(f"Found {user.role.value} {user.email} (ID {user.id})")
            else:
                user = UserRepository.create(User(**account))
                print(f"Created {user.role.value} {user.email} with ID: {user.id}")
            print(f"  token: {create_access_token(identity=str(user.id))}")

        print("Demo accounts setup complete!")


if __name__ == "__main__":
    main()
