"""
Configuration settings for the Flask application.
This module contains all configuration classes for different environments.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes", "on"}


class Config:
    """
    Base configuration class containing common settings.

    This class defines the default configuration that other
    environment-specific classes will inherit from.
    """

    # Flask Configuration
    DEBUG = os.environ.get("FLASK_DEBUG", "False").lower() == "true"
    HOST = os.environ.get("FLASK_HOST", "0.0.0.0")
    PORT = int(os.environ.get("FLASK_PORT", 3000))

    # Embed Secret + Client ID: generated under Admin > APIs & Embed Secrets.
    # The secret is shown only once when created; keep it in the environment/.env.
    EMBED_SECRET = os.environ.get("EMBED_SECRET")
    EMBED_CLIENT_ID = os.environ.get("EMBED_CLIENT_ID")

    # Embed path generated from the workbook's Embedding modal; points at the
    # workbook, a page, or a single element. Must not carry a query string.
    EMBED_PATH = os.environ.get("EMBED_PATH")

    # view | explore | userbacked
    EMBED_MODE = os.environ.get("EMBED_MODE", "explore")

    # Unique id of the viewer looking at the dashboard
    EMBED_EXTERNAL_USER_ID = os.environ.get(
        "EMBED_EXTERNAL_USER_ID", "testuser@example.com"
    )

    # userbacked mode only: email (defaults to the external user id), team,
    # and account type ("viewer", "explorer", or a custom type)
    EMBED_USER_EMAIL = os.environ.get("EMBED_USER_EMAIL")
    EMBED_USER_TEAM = os.environ.get("EMBED_USER_TEAM")
    EMBED_USER_ACCOUNT_TYPE = os.environ.get("EMBED_USER_ACCOUNT_TYPE")

    # Seconds the viewer may keep the embed open
    EMBED_SESSION_LENGTH = int(os.environ.get("EMBED_SESSION_LENGTH", 3600))

    # view/explore mode only: allow export/download on visualizations and
    # row-level security filters passed to page controls, as a JSON object,
    # e.g. EMBED_FILTERS='{"Region": "West"}'
    EMBED_ALLOW_EXPORT = _env_flag("EMBED_ALLOW_EXPORT", "true")
    EMBED_FILTERS = os.environ.get("EMBED_FILTERS", "{}")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # CORS for the JSON API (comma-separated origins; empty disables CORS)
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "")

    # Rate Limiting Configuration
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    RATELIMIT_STORAGE_URL = os.environ.get("RATELIMIT_STORAGE_URL", "memory://")
    RATELIMIT_DEFAULT = "100 per hour"

    # Security Headers (Talisman). frame-src is extended with the embed origin
    # at startup.
    FORCE_HTTPS = False  # Set to True in production
    STRICT_TRANSPORT_SECURITY = True
    CONTENT_SECURITY_POLICY = {
        "default-src": "'self'",
        "style-src": "'self' 'unsafe-inline'",
        "img-src": "'self' data: https:",
    }


class DevelopmentConfig(Config):
    """
    Development environment configuration.

    Debug mode and relaxed security settings for local use.
    """

    DEBUG = True
    FORCE_HTTPS = False
    # Disable rate limiting in development to avoid 429s while iterating
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """
    Production environment configuration.

    This configuration is used in production with enhanced security.
    """

    DEBUG = False

    # Enhanced security for production
    FORCE_HTTPS = True

    # Stricter rate limiting
    RATELIMIT_DEFAULT = "50 per hour"


class TestingConfig(Config):
    """
    Testing environment configuration.

    Fixed embed credentials and disabled security features.
    """

    TESTING = True
    DEBUG = True

    EMBED_SECRET = "test-secret"
    EMBED_CLIENT_ID = "client1"
    EMBED_PATH = "https://example.com/embed/abc"
    EMBED_MODE = "view"
    EMBED_EXTERNAL_USER_ID = "user@example.com"
    EMBED_USER_EMAIL = None
    EMBED_USER_TEAM = None
    EMBED_USER_ACCOUNT_TYPE = None
    EMBED_SESSION_LENGTH = 3600
    EMBED_ALLOW_EXPORT = True
    EMBED_FILTERS = "{}"

    CORS_ORIGINS = ""

    # Disable rate limiting for tests
    RATELIMIT_ENABLED = False
