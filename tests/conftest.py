import pytest

from config.settings import TestingConfig
from sigma_embed import create_app
from sigma_embed.security import EmbedConfig


@pytest.fixture()
def app():
    # TestingConfig carries fixed embed credentials; rate limiting and
    # security headers are off
    return create_app(TestingConfig)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_app():
    """Build an app with EMBED_*/Flask settings overridden per test."""

    def _make(**overrides):
        return create_app(TestingConfig, overrides=overrides)

    return _make


@pytest.fixture()
def embed_config():
    return EmbedConfig.create(
        base_path="https://example.com/embed/abc",
        client_id="client1",
        secret="test-secret",
        mode="view",
        external_user_id="user@example.com",
        session_length=3600,
    )


@pytest.fixture()
def userbacked_config():
    return EmbedConfig.create(
        base_path="https://example.com/embed/abc",
        client_id="client1",
        secret="test-secret",
        mode="userbacked",
        external_user_id="user@example.com",
        team="My Team",
        account_type="explorer",
    )
