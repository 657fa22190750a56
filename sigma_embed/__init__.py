"""
Flask application factory and configuration.

This module contains the Flask application factory that loads settings,
builds the process-wide embed configuration, and wires up extensions,
blueprints and error handlers.
"""
import logging
import os
import uuid

from flask import Flask, g, jsonify, render_template, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman

from config.settings import Config, DevelopmentConfig, ProductionConfig, TestingConfig
from sigma_embed.embed_config import init_embed_config
from sigma_embed.error_utils import embed_error_response, handle_api_exception
from sigma_embed.security import EmbedError

logger = logging.getLogger(__name__)


def _select_config_class():
    env = os.environ.get("FLASK_ENV", "development")
    if env == "production":
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig


def create_app(config_class: type[Config] | None = None, overrides: dict | None = None):
    """
    Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, will be determined
                     from FLASK_ENV environment variable.
        overrides: Optional mapping applied on top of the configuration class,
                   before the embed configuration is built.

    Returns:
        Flask: Configured Flask application instance

    Raises:
        InvalidConfig: when the EMBED_* settings cannot produce signed URLs
    """
    app = Flask(__name__)

    if config_class is None:
        config_class = _select_config_class()

    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    # Configure structured logging early (console-only during tests)
    from sigma_embed.structured_logging import configure_structlog

    configure_structlog(app, role="web")

    # Fail fast on a misconfigured embed; never serve unsigned or half-signed URLs
    embed = init_embed_config(app)

    init_extensions(app, frame_origin=embed.frame_origin)
    register_blueprints(app)
    register_error_handlers(app)

    return app


def init_extensions(app, frame_origin: str):
    """
    Initialize Flask extensions.

    Args:
        app: Flask application instance
        frame_origin: origin of the embed path, allowed as iframe source
    """

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def _echo_request_id(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response

    # CORS for the JSON API only, and only for configured origins
    origins = [
        o.strip() for o in str(app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()
    ]
    if origins:
        CORS(app, resources={r"/api/*": {"origins": origins}})

    # Rate limiting (can be disabled via RATELIMIT_ENABLED=False)
    if app.config.get("RATELIMIT_ENABLED", True):
        limiter = Limiter(
            key_func=get_remote_address,
            default_limits=[app.config.get("RATELIMIT_DEFAULT", "100 per hour")],
            storage_uri=app.config.get("RATELIMIT_STORAGE_URL", "memory://"),
        )
        limiter.init_app(app)

        # Liveness probes poll far more often than any per-client limit
        from sigma_embed.api.health import health_check

        limiter.exempt(health_check)

    # Security headers (only in production or if explicitly enabled)
    if app.config.get("FORCE_HTTPS") or not app.debug:
        csp = dict(app.config.get("CONTENT_SECURITY_POLICY") or {})
        csp["frame-src"] = f"'self' {frame_origin}"
        Talisman(
            app,
            force_https=app.config.get("FORCE_HTTPS", False),
            strict_transport_security=app.config.get("STRICT_TRANSPORT_SECURITY", True),
            content_security_policy=csp,
        )


def register_blueprints(flask_app):
    """
    Register Flask blueprints.

    Args:
        flask_app: Flask application instance
    """
    # JSON API; importing routes registers the endpoints on api_bp
    from sigma_embed.api.routes import api_bp

    flask_app.register_blueprint(api_bp, url_prefix="/api")

    # Iframe page
    from sigma_embed.main.routes import main_bp

    flask_app.register_blueprint(main_bp)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def register_error_handlers(app):
    """
    Register error handlers for embed errors and common HTTP errors.

    API paths receive JSON bodies; everything else renders an error page.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(EmbedError)
    def embed_error(error):
        """Map InvalidConfig/EncodingError to 400 and SigningFailure to 500."""
        payload, status = embed_error_response(logger, error)
        if _wants_json():
            return jsonify(payload), status
        return (
            render_template(
                "errors/error.html", status=status, message=payload["error"]
            ),
            status,
        )

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        if _wants_json():
            return jsonify({"success": False, "error": "Not found"}), 404
        return render_template("errors/error.html", status=404, message="Not found"), 404

    @app.errorhandler(429)
    def ratelimit_handler(error):
        """Handle 429 Too Many Requests errors."""
        if _wants_json():
            return jsonify({"success": False, "error": "Too many requests"}), 429
        return (
            render_template("errors/error.html", status=429, message="Too many requests"),
            429,
        )

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        if _wants_json():
            # Called from Flask's exception handler, so exc_info is still set
            payload, status = handle_api_exception(
                logger, "Unhandled API error", status_code=500
            )
            return jsonify(payload), status
        return (
            render_template(
                "errors/error.html", status=500, message="An internal error occurred"
            ),
            500,
        )
