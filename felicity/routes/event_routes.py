from flask import Blueprint, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required, verify_jwt_in_request

from felicity.exceptions import NotFoundError
from felicity.models.enums import EventStatus
from felicity.routes import current_user, json_list
from felicity.services.event_service import EventService
from felicity.services.registration_service import RegistrationService

event_bp = Blueprint("event", __name__)


@event_bp.route("/events", methods=["GET"])
def get_all_events():
    events = EventService.get_events(request.args.get("type"))
    return json_list("events", events)


@event_bp.route("/events", methods=["POST"])
@jwt_required()
def create_event():
    user = current_user()
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "No data provided"}), 400

    event = EventService.create_event(data, user)
    return jsonify(event.to_dict()), 201


@event_bp.route("/events/<int:event_id>", methods=["GET"])
def get_event(event_id):
    event = EventService.get_event(event_id)

    # Drafts are only visible to their organizer
    if event.status == EventStatus.DRAFT:
        verify_jwt_in_request(optional=True)
        identity = get_jwt_identity()
        if identity is None or int(identity) != event.organizer_id:
            raise NotFoundError(f"Event with ID {event_id} not found")

    return jsonify(event.to_dict()), 200


@event_bp.route("/events/<int:event_id>", methods=["PUT"])
@jwt_required()
def update_event(event_id):
    user = current_user()
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "No data provided"}), 400

    event = EventService.update_event(event_id, data, user)
    return jsonify(event.to_dict()), 200


@event_bp.route("/events/<int:event_id>/publish", methods=["PUT"])
@jwt_required()
def publish_event(event_id):
    event = EventService.publish_event(event_id, current_user())
    return jsonify(event.to_dict()), 200


@event_bp.route("/events/<int:event_id>/close", methods=["PUT"])
@jwt_required()
def close_event(event_id):
    event = EventService.close_event(event_id, current_user())
    return jsonify(event.to_dict()), 200


@event_bp.route("/events/<int:event_id>", methods=["DELETE"])
@jwt_required()
def delete_event(event_id):
    EventService.delete_event(event_id, current_user())
    return jsonify({"message": "Event deleted successfully"}), 200


@event_bp.route("/events/<int:event_id>/item-limits", methods=["GET"])
@jwt_required()
def get_item_limits(event_id):
    limits = RegistrationService.get_item_limits(event_id, current_user())
    return jsonify({"event_id": event_id, "items": limits}), 200


@event_bp.route("/events/<int:event_id>/registrations", methods=["GET"])
@jwt_required()
def get_event_registrations(event_id):
    registrations = RegistrationService.get_event_registrations(
        event_id, current_user(), status=request.args.get("status")
    )
    return json_list("registrations", registrations, include_qr=False), 200
