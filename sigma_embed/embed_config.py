"""
Build the process-wide EmbedConfig from Flask configuration.

The application factory calls :func:`init_embed_config` once at startup so a
misconfigured process fails before serving requests. Views read the result
through :func:`current_embed_config` instead of touching EMBED_* keys, which
keeps the signing function free of ambient global state.
"""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog
from flask import Flask, current_app

from sigma_embed.security import EmbedConfig, EmbedMode, InvalidConfig

logger = structlog.get_logger(__name__)

EXTENSION_KEY = "sigma_embed"

_REQUIRED_KEYS = ("EMBED_SECRET", "EMBED_CLIENT_ID", "EMBED_PATH")


def _optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_filters(raw: Any) -> dict[str, str]:
    """Accept a mapping or a JSON object string of filter name -> value."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidConfig(f"EMBED_FILTERS is not valid JSON: {e.msg}") from None
    if not isinstance(raw, Mapping):
        raise InvalidConfig("EMBED_FILTERS must be a JSON object")
    filters = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list)) or value is None:
            raise InvalidConfig(f"filter {key!r} must have a scalar value")
        if isinstance(value, bool):
            value = "true" if value else "false"
        filters[str(key)] = str(value)
    return filters


def embed_config_from_mapping(config: Mapping[str, Any]) -> EmbedConfig:
    """Translate EMBED_* settings into a validated EmbedConfig."""
    missing = [k for k in _REQUIRED_KEYS if not _optional(config.get(k))]
    if missing:
        raise InvalidConfig(f"{', '.join(missing)} not configured")

    try:
        session_length = int(config.get("EMBED_SESSION_LENGTH", 3600))
    except (TypeError, ValueError):
        raise InvalidConfig("EMBED_SESSION_LENGTH must be an integer") from None

    mode = EmbedMode.parse(config.get("EMBED_MODE") or "explore")
    userbacked = mode is EmbedMode.USERBACKED

    embed = EmbedConfig.create(
        base_path=str(config["EMBED_PATH"]).strip(),
        client_id=str(config["EMBED_CLIENT_ID"]).strip(),
        secret=config["EMBED_SECRET"],
        mode=mode,
        external_user_id=_optional(config.get("EMBED_EXTERNAL_USER_ID")) or "",
        team=_optional(config.get("EMBED_USER_TEAM")),
        account_type=_optional(config.get("EMBED_USER_ACCOUNT_TYPE")),
        # EMBED_USER_EMAIL is commonly set for every mode; only userbacked sends it
        email=_optional(config.get("EMBED_USER_EMAIL")) if userbacked else None,
        session_length=session_length,
        allow_export=_parse_bool(config.get("EMBED_ALLOW_EXPORT", True)),
        filters=parse_filters(config.get("EMBED_FILTERS")),
    )
    embed.validate()
    return embed


def init_embed_config(app: Flask) -> EmbedConfig:
    """Build, validate and register the EmbedConfig on ``app``."""
    embed = embed_config_from_mapping(app.config)
    app.extensions[EXTENSION_KEY] = embed
    logger.debug(
        "embed_config_loaded",
        mode=embed.mode.value,
        client_id=embed.client_id,
        frame_origin=embed.frame_origin,
        session_length=embed.session_length,
    )
    return embed


def current_embed_config() -> EmbedConfig:
    """Return the EmbedConfig registered on the active Flask app."""
    try:
        return current_app.extensions[EXTENSION_KEY]
    except KeyError:
        raise InvalidConfig("Embed configuration has not been initialised") from None
