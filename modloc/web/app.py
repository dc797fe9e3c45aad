"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from modloc.errors import ServiceError
from modloc.logger import get_logger
from modloc.web.responses import error_response

from .routes import catalog_bp, compilations_bp, glossaries_bp, llm_bp, settings_bp

logger = get_logger(__name__)


def build_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(glossaries_bp, url_prefix="/api/glossaries")
    app.register_blueprint(catalog_bp, url_prefix="/api/catalog")
    app.register_blueprint(compilations_bp, url_prefix="/api/compilations")
    app.register_blueprint(llm_bp, url_prefix="/api/llm")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")


def register_default_routes(app: Flask) -> None:
    """Register the health route and JSON error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        return jsonify({"status": "ok"})

    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        return error_response(e)

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"error": e.description, "code": e.name.lower().replace(" ", "_")}), e.code

    @app.errorhandler(Exception)
    def internal_error(e: Exception):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error"}), 500
