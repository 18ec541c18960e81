import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from felicity.config import config
from felicity.exceptions import (
    MissingFieldsError,
    NotFoundError,
    PolicyViolation,
    UnauthorizedError,
    ValidationError,
)
from felicity.extensions import db, jwt, migrate
from felicity.utils.email import mail


def create_app(config_name=None, **overrides):
    app = Flask(__name__)

    config_name = config_name or os.getenv("FLASK_ENV", "development")
    app.config.from_object(config.get(config_name, config["default"]))
    app.config.update(overrides)

    # Configure logging
    logging.basicConfig(level=logging.INFO)
    app.logger.setLevel(logging.INFO)

    # Implement rate limiting using flask-limiter
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[app.config["RATELIMIT_DEFAULT"]],
        storage_uri=app.config["RATELIMIT_STORAGE_URI"],
        strategy="fixed-window",
    )

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    # Register blueprints
    from felicity.routes.event_routes import event_bp
    from felicity.routes.registration_routes import registration_bp

    app.register_blueprint(event_bp, url_prefix="/api")
    app.register_blueprint(registration_bp, url_prefix="/api")

    # Set up CORS
    cors_origins = app.config["CORS_ORIGINS"]
    app.logger.info(f"Initializing CORS with origins: {cors_origins}")
    CORS(
        app,
        resources={r"/api/*": {"origins": cors_origins}},
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        expose_headers=["Content-Type"],
    )

    register_error_handlers(app)

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    from felicity.tasks import configure_scheduler

    configure_scheduler(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(MissingFieldsError)
    def handle_missing_fields(e):
        return jsonify({"error": str(e), "missing_fields": e.fields}), 400

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e), "fields": e.fields}), 400

    @app.errorhandler(PolicyViolation)
    def handle_policy_violation(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(UnauthorizedError)
    def handle_unauthorized(e):
        return jsonify({"error": str(e) or "Unauthorized"}), 403

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e) or "Not found"}), 404

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.error(f"Unhandled error: {str(e)}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500
