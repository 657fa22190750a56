"""
Error handling utilities for consistent logging and error responses.

Errors raised while building signed URLs are logged with structured context
and translated into sanitized API payloads. Exception messages from the
security package never contain the embed secret, but public responses still
use the fixed ``public_message`` of each error class.
"""

import logging
import sys
from typing import Any

from flask import g, has_request_context

from sigma_embed.security import EmbedError


def safe_log_error(
    logger: logging.Logger,
    message: str,
    exc_info: bool | BaseException | tuple | None = True,
    level: int = logging.ERROR,
    **extra_context: Any,
) -> None:
    """
    Log an error with structured context and exception information.

    Args:
        logger: The logger instance to use
        message: Human-readable error message
        exc_info: Exception info (True for current exception, exception object, or tuple)
        level: Log level (default: ERROR)
        **extra_context: Additional context fields to include in the log

    Example:
        try:
            url = build_signed_url(config)
        except InvalidConfig as e:
            safe_log_error(logger, "Embed config rejected", exc_info=e, mode="view")
    """
    context = {"error_context": extra_context, "has_exception": exc_info is not None}

    if exc_info:
        if isinstance(exc_info, BaseException):
            context["exception_type"] = type(exc_info).__name__
            context["exception_message"] = str(exc_info)
        elif exc_info is True:
            exc_type, exc_value, _ = sys.exc_info()
            if exc_type:
                context["exception_type"] = exc_type.__name__
                context["exception_message"] = str(exc_value)

    logger.log(level, message, exc_info=exc_info, extra=context)


def _request_id() -> str | None:
    if has_request_context():
        return getattr(g, "request_id", None)
    return None


def handle_api_exception(
    logger: logging.Logger,
    message: str,
    status_code: int = 500,
    public_message: str | None = None,
    **extra_context: Any,
) -> tuple[dict[str, Any], int]:
    """
    Log the current exception and build a sanitized JSON error body.

    Returns:
        (response_dict, status_code)
    """
    safe_log_error(logger, message, exc_info=True, **extra_context)

    if public_message is None:
        if status_code >= 500:
            public_message = "An internal error occurred. Please try again later."
        elif status_code >= 400:
            public_message = "The request could not be completed."
        else:
            public_message = "An error occurred."

    response = {"success": False, "error": public_message}

    request_id = _request_id()
    if request_id:
        response["request_id"] = request_id

    return response, status_code


def embed_error_response(
    logger: logging.Logger, exc: EmbedError
) -> tuple[dict[str, Any], int]:
    """Log an EmbedError and map it to its HTTP status and public payload.

    Client-side configuration problems (4xx) log at WARNING, signing
    failures at ERROR.
    """
    status = exc.status_code
    safe_log_error(
        logger,
        "Embed URL request failed",
        exc_info=exc,
        level=logging.ERROR if status >= 500 else logging.WARNING,
        error_type=type(exc).__name__,
    )
    response = {
        "success": False,
        "error": exc.public_message,
        "error_type": type(exc).__name__,
    }
    request_id = _request_id()
    if request_id:
        response["request_id"] = request_id
    return response, status
