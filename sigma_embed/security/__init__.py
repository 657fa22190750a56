"""Security helpers package (signed embed URLs).

Exposes the builder and verifier for HMAC-signed dashboard embed URLs plus
the error taxonomy the web layer maps to HTTP responses.
"""

from .errors import (
    EmbedError,
    EmbedUrlExpired,
    EncodingError,
    InvalidConfig,
    SignatureMismatch,
    SigningFailure,
)
from .signed_embed import (
    EmbedConfig,
    EmbedMode,
    EmbedSecret,
    ParsedEmbedUrl,
    build_signed_url,
    canonical_url,
    sign_url,
    verify_signed_url,
)

__all__ = [
    "EmbedConfig",
    "EmbedError",
    "EmbedMode",
    "EmbedSecret",
    "EmbedUrlExpired",
    "EncodingError",
    "InvalidConfig",
    "ParsedEmbedUrl",
    "SignatureMismatch",
    "SigningFailure",
    "build_signed_url",
    "canonical_url",
    "sign_url",
    "verify_signed_url",
]
