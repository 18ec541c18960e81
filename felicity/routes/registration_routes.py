from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from felicity.exceptions import MissingFieldsError
from felicity.routes import current_user, json_list
from felicity.services.registration_service import RegistrationService
from felicity.utils.dates import isoformat
from felicity.utils.parsing import parse_int

registration_bp = Blueprint("registration", __name__)


@registration_bp.route("/registrations", methods=["POST"])
@jwt_required()
def create_registration():
    user = current_user()
    data = request.get_json(silent=True) or {}
    if not data.get("event_id"):
        raise MissingFieldsError(["event_id"])

    registration = RegistrationService.create_registration(
        user, parse_int(data["event_id"], "event_id", minimum=1), data
    )
    return jsonify(registration.to_dict()), 201


@registration_bp.route("/registrations/my", methods=["GET"])
@jwt_required()
def get_my_registrations():
    event_id = request.args.get("event_id", type=int)
    registrations = RegistrationService.get_participant_registrations(current_user(), event_id)
    return json_list("registrations", registrations, include_qr=False), 200


@registration_bp.route("/registrations/<int:registration_id>/ticket", methods=["GET"])
@jwt_required()
def get_ticket(registration_id):
    registration = RegistrationService.get_ticket(registration_id, current_user())
    event = registration.event
    return jsonify(
        {
            "ticket_id": registration.ticket_id,
            "qr_code": registration.qr_code,
            "status": registration.status.value,
            "event": {"id": event.id, "name": event.name, "start_date": isoformat(event.start_date)},
            "participant": registration.participant.to_dict(),
            "merchandise_selections": [s.to_dict() for s in registration.merchandise_selections],
        }
    ), 200


@registration_bp.route("/registrations/<int:registration_id>/payment-proof", methods=["POST"])
@jwt_required()
def upload_payment_proof(registration_id):
    data = request.get_json(silent=True) or {}
    registration = RegistrationService.upload_payment_proof(
        registration_id, current_user(), data.get("payment_proof")
    )
    return jsonify(registration.to_dict()), 200


@registration_bp.route("/registrations/<int:registration_id>/payment-status", methods=["PUT"])
@jwt_required()
def set_payment_status(registration_id):
    data = request.get_json(silent=True) or {}
    if not data.get("payment_status"):
        raise MissingFieldsError(["payment_status"])

    registration = RegistrationService.set_payment_status(
        registration_id, current_user(), data["payment_status"]
    )
    return jsonify(registration.to_dict(include_qr=False)), 200


@registration_bp.route("/registrations/<int:registration_id>/cancel", methods=["POST"])
@jwt_required()
def cancel_registration(registration_id):
    registration = RegistrationService.cancel_registration(registration_id, current_user())
    return jsonify(registration.to_dict(include_qr=False)), 200


@registration_bp.route("/registrations/mark-attendance", methods=["POST"])
@jwt_required()
def mark_attendance():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("event_id", "ticket_id") if not data.get(f)]
    if missing:
        raise MissingFieldsError(missing)

    registration = RegistrationService.mark_attendance(
        current_user(), parse_int(data["event_id"], "event_id", minimum=1), data["ticket_id"]
    )
    return jsonify(
        {
            "message": "Attendance marked",
            "registration": registration.to_dict(include_qr=False),
        }
    ), 200
