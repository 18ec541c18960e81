from flask import jsonify
from flask_jwt_extended import get_jwt_identity

from felicity.exceptions import UnauthorizedError
from felicity.repositories.user_repository import UserRepository


def current_user():
    """Resolve the JWT identity to an active user or refuse the request."""
    identity = get_jwt_identity()
    user = UserRepository.find_by_id(int(identity)) if identity is not None else None
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    return user


def json_list(key, items, **serialize_kwargs):
    return jsonify({key: [item.to_dict(**serialize_kwargs) for item in items]})
