"""Exception hierarchy for embed URL signing and verification.

HTTP mapping used by the application error handlers:

- InvalidConfig, EncodingError -> 400
- SigningFailure -> 500
- SignatureMismatch, EmbedUrlExpired -> 403

Messages never carry the embed secret.
"""


class EmbedError(Exception):
    """Base class for all embed signing errors."""

    status_code = 500
    public_message = "Unable to generate embed URL"


class InvalidConfig(EmbedError):
    """Required embed fields are missing, malformed, or mutually exclusive."""

    status_code = 400
    public_message = "Embed configuration is invalid"


class EncodingError(EmbedError):
    """A parameter value cannot be represented as UTF-8."""

    status_code = 400
    public_message = "Embed parameters could not be encoded"


class SigningFailure(EmbedError):
    """The HMAC-SHA256 primitive is unavailable or failed. Not retried."""

    status_code = 500
    public_message = "Unable to sign embed URL"


class SignatureMismatch(EmbedError):
    """A signed URL is malformed or its signature does not verify."""

    status_code = 403
    public_message = "Embed URL signature is invalid"


class EmbedUrlExpired(SignatureMismatch):
    """A correctly signed URL whose session window has elapsed."""

    public_message = "Embed URL has expired"
