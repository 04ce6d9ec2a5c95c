# FILE: salesdesk/__init__.py
# DESCRIPTION: Initializes the salesdesk Flask app and registers routes and error handlers.

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from salesdesk.api.routes_contracts import contracts_bp
from salesdesk.api.routes_proposals import proposals_bp
from salesdesk.api.routes_public import public_bp
from salesdesk.core.errors import TransitionError
from salesdesk.logging_config import configure_logging
from salesdesk.services import build_services

logger = configure_logging(
    name="salesdesk",
    logfile="salesdesk.log",
    level=None  # Uses LOG_LEVEL from environment if set
)


def create_app(settings=None, email_sender=None, sinks=None, clock=None, services=None):
    """Create and configure the salesdesk Flask application."""
    app = Flask(__name__)

    services = services or build_services(settings, email_sender=email_sender, sinks=sinks, clock=clock)
    app.secret_key = services.settings.secret_key
    app.extensions["salesdesk"] = services

    # Register blueprints
    app.register_blueprint(proposals_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(public_bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        session = services.database.get_session()
        session.close()
        return {"status": "ok"}, 200

    @app.errorhandler(TransitionError)
    def handle_transition_error(error):
        logger.info("%s on %s %s: %s", type(error).__name__, error.entity_type, error.entity_id, error.message)
        return jsonify(error.to_dict()), error.status_code

    # Global error handler
    @app.errorhandler(Exception)
    def handle_error(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.error("Unhandled error occurred", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    logger.info("salesdesk application initialized successfully")
    return app
