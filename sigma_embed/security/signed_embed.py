"""Signed embed URL construction and verification.

Design goals:
- One shared builder for every response path (HTML iframe page, JSON API)
- The embed secret stays in memory only: never logged, serialized, or echoed
- Byte-exact canonical query string so the embedding platform can recompute
  the signature over exactly what we signed

Contract:
- Parameters, in order: :client_id, :mode, :external_user_id, :session_length,
  :time, :nonce, then
    userbacked: :email, :external_user_team, :account_type
    view/explore: :allow_export, then filter pairs in insertion order
- Reserved keys are inserted literally; filter keys and all values are
  percent-encoded independently (encodeURIComponent safe set)
- Signature scheme: HMAC-SHA256(secret, "<base_path>?<params>") -> lowercase hex,
  appended as the final parameter "&:signature=<hex>"
- Nonce: 128 bits from the OS CSPRNG, fresh on every call
"""
from __future__ import annotations

import enum
import hmac
import re
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from hashlib import sha256
from urllib.parse import parse_qsl, quote, urlsplit

import structlog

from sigma_embed.security.errors import (
    EmbedUrlExpired,
    EncodingError,
    InvalidConfig,
    SignatureMismatch,
    SigningFailure,
)

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_LENGTH = 3600
NONCE_BYTES = 16
SIGNATURE_PARAM = ":signature"

# Characters encodeURIComponent leaves alone besides [A-Za-z0-9_.-~]
_URI_COMPONENT_SAFE = "!~*'()"
_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


class EmbedMode(enum.Enum):
    """Interaction capability granted to the embedded viewer."""

    VIEW = "view"
    EXPLORE = "explore"
    USERBACKED = "userbacked"

    @classmethod
    def parse(cls, value: EmbedMode | str) -> EmbedMode:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidConfig(
                f"Unknown embed mode {value!r}; expected one of: {allowed}"
            ) from None


class EmbedSecret:
    """Shared signing key that refuses to show itself.

    ``repr``/``str`` are redacted and pickling is refused, so the value can
    only leave this object through :meth:`reveal` at signing time.
    """

    __slots__ = ("_value",)

    def __init__(self, value: EmbedSecret | str | bytes):
        if isinstance(value, EmbedSecret):
            value = value._value
        elif isinstance(value, str):
            try:
                value = value.encode("utf-8")
            except UnicodeEncodeError:
                raise EncodingError("Embed secret cannot be encoded as UTF-8") from None
        elif not isinstance(value, bytes):
            raise InvalidConfig("Embed secret must be a string")
        self._value = value

    def reveal(self) -> bytes:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return "EmbedSecret('**********')"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("EmbedSecret cannot be serialized")


@dataclass(frozen=True)
class EmbedConfig:
    """Immutable inputs for one signed embed URL.

    Use :meth:`create` to build from loosely typed values (mode strings,
    plain secrets, filter mappings).
    """

    base_path: str
    client_id: str
    secret: EmbedSecret
    mode: EmbedMode
    external_user_id: str
    team: str | None = None
    account_type: str | None = None
    email: str | None = None
    session_length: int = DEFAULT_SESSION_LENGTH
    allow_export: bool = True
    filters: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def create(
        cls,
        *,
        base_path: str,
        client_id: str,
        secret: EmbedSecret | str | bytes,
        mode: EmbedMode | str,
        external_user_id: str,
        team: str | None = None,
        account_type: str | None = None,
        email: str | None = None,
        session_length: int = DEFAULT_SESSION_LENGTH,
        allow_export: bool = True,
        filters: Mapping[str, str] | None = None,
    ) -> EmbedConfig:
        return cls(
            base_path=base_path,
            client_id=client_id,
            secret=EmbedSecret(secret),
            mode=EmbedMode.parse(mode),
            external_user_id=external_user_id,
            team=team,
            account_type=account_type,
            email=email,
            session_length=session_length,
            allow_export=allow_export,
            filters=tuple((filters or {}).items()),
        )

    @property
    def frame_origin(self) -> str:
        """Scheme and host of the embed path, e.g. for a CSP ``frame-src``."""
        parts = urlsplit(self.base_path)
        return f"{parts.scheme}://{parts.netloc}"

    def validate(self) -> None:
        """Raise InvalidConfig or EncodingError unless this config can be signed."""
        _check_base_path(self.base_path)
        _check_text("client_id", self.client_id)
        _check_text("external_user_id", self.external_user_id)
        if not isinstance(self.secret, EmbedSecret) or not self.secret:
            raise InvalidConfig("Embed secret is required")
        if not isinstance(self.mode, EmbedMode):
            raise InvalidConfig("mode must be an EmbedMode")
        if (
            isinstance(self.session_length, bool)
            or not isinstance(self.session_length, int)
            or self.session_length <= 0
        ):
            raise InvalidConfig("session_length must be a positive integer")

        if self.mode is EmbedMode.USERBACKED:
            missing = [n for n in ("team", "account_type") if not getattr(self, n)]
            if missing:
                raise InvalidConfig(
                    f"mode 'userbacked' requires: {', '.join(missing)}"
                )
            _check_text("team", self.team)
            _check_text("account_type", self.account_type)
            if self.email is not None:
                _check_text("email", self.email)
            if self.filters:
                raise InvalidConfig("filters are not supported in 'userbacked' mode")
        else:
            present = [
                n for n in ("team", "account_type", "email") if getattr(self, n) is not None
            ]
            if present:
                raise InvalidConfig(
                    f"{', '.join(present)} only allowed in 'userbacked' mode, "
                    f"not {self.mode.value!r}"
                )

        for key, value in self.filters:
            if not isinstance(key, str) or not key:
                raise InvalidConfig("filter names must be non-empty strings")
            if key.startswith(":"):
                raise InvalidConfig(f"filter name {key!r} collides with a reserved parameter")
            if not isinstance(value, str):
                raise InvalidConfig(f"filter {key!r} must have a string value")

        for name, value in self._text_fields():
            try:
                value.encode("utf-8")
            except UnicodeEncodeError:
                raise EncodingError(f"{name} cannot be encoded as UTF-8") from None

    def _text_fields(self):
        yield "base_path", self.base_path
        yield "client_id", self.client_id
        yield "external_user_id", self.external_user_id
        for name in ("team", "account_type", "email"):
            value = getattr(self, name)
            if value is not None:
                yield name, value
        for key, value in self.filters:
            yield "filter name", key
            yield f"filter {key!r}", value


def _check_text(name: str, value) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfig(f"{name} is required")


def _check_base_path(base_path) -> None:
    _check_text("base_path", base_path)
    parts = urlsplit(base_path)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise InvalidConfig("base_path must be an absolute http(s) URL")
    if "?" in base_path or "#" in base_path:
        raise InvalidConfig("base_path must not contain a query string or fragment")


@dataclass(frozen=True)
class ParsedEmbedUrl:
    """A signed URL whose signature has been checked."""

    base_path: str
    params: tuple[tuple[str, str], ...]
    signature: str

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.params:
            if k == key:
                return v
        return default

    @property
    def nonce(self) -> str | None:
        return self.get(":nonce")

    @property
    def mode(self) -> str | None:
        return self.get(":mode")

    @property
    def time(self) -> int:
        return _int_param(self, ":time")

    @property
    def session_length(self) -> int:
        return _int_param(self, ":session_length")

    @property
    def expires_at(self) -> int:
        return self.time + self.session_length

    @property
    def filters(self) -> dict[str, str]:
        return {k: v for k, v in self.params if not k.startswith(":")}


def _int_param(parsed: ParsedEmbedUrl, key: str) -> int:
    raw = parsed.get(key)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise SignatureMismatch(f"{key} is missing or not an integer") from None


def generate_nonce() -> str:
    """Return a fresh 128-bit random token as hex."""
    return secrets.token_hex(NONCE_BYTES)


def _encode(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def canonical_params(
    config: EmbedConfig, timestamp: int, nonce: str
) -> list[tuple[str, str]]:
    """Ordered (key, raw value) pairs covered by the signature."""
    params = [
        (":client_id", config.client_id),
        (":mode", config.mode.value),
        (":external_user_id", config.external_user_id),
        (":session_length", str(config.session_length)),
        (":time", str(int(timestamp))),
        (":nonce", str(nonce)),
    ]
    if config.mode is EmbedMode.USERBACKED:
        params.extend(
            [
                (":email", config.email or config.external_user_id),
                (":external_user_team", config.team),
                (":account_type", config.account_type),
            ]
        )
    else:
        params.append((":allow_export", "true" if config.allow_export else "false"))
        params.extend(config.filters)
    return params


def canonical_url(config: EmbedConfig, timestamp: int, nonce: str) -> str:
    """Return the unsigned URL: ``base_path?key=value&...``."""
    config.validate()
    if not nonce:
        raise InvalidConfig("nonce is required")
    pairs = []
    for key, value in canonical_params(config, timestamp, nonce):
        name = key if key.startswith(":") else _encode(key)
        pairs.append(f"{name}={_encode(value)}")
    return config.base_path + "?" + "&".join(pairs)


def sign_url(unsigned_url: str, secret: EmbedSecret | str | bytes) -> str:
    """HMAC-SHA256 of the unsigned URL as 64 lowercase hex characters."""
    key = EmbedSecret(secret).reveal()
    if not key:
        raise InvalidConfig("Embed secret is required")
    try:
        message = unsigned_url.encode("utf-8")
    except UnicodeEncodeError:
        raise EncodingError("URL cannot be encoded as UTF-8") from None
    try:
        return hmac.new(key, message, sha256).hexdigest()
    except (ValueError, TypeError) as exc:
        # e.g. sha256 blocked by a FIPS crypto policy
        raise SigningFailure("HMAC-SHA256 is unavailable") from exc


def build_signed_url(config: EmbedConfig) -> str:
    """Build a one-time signed embed URL for ``config``.

    Raises:
        InvalidConfig: missing or conflicting fields
        EncodingError: a value is not representable as UTF-8
        SigningFailure: the HMAC primitive failed
    """
    nonce = generate_nonce()
    timestamp = int(time.time())
    unsigned = canonical_url(config, timestamp, nonce)
    signature = sign_url(unsigned, config.secret)
    logger.info(
        "embed_url_signed",
        mode=config.mode.value,
        client_id=config.client_id,
        external_user_id=config.external_user_id,
        session_length=config.session_length,
        filter_count=len(config.filters),
    )
    return f"{unsigned}&{SIGNATURE_PARAM}={signature}"


def verify_signed_url(
    url: str,
    secret: EmbedSecret | str | bytes,
    *,
    now: int | None = None,
    check_expiry: bool = False,
) -> ParsedEmbedUrl:
    """Recompute the signature of ``url`` and return its decoded parameters.

    The signature must be the final parameter. With ``check_expiry`` the
    session window (:time + :session_length) must not have elapsed at ``now``
    (defaults to the current clock).

    Raises:
        SignatureMismatch: malformed URL or wrong signature
        EmbedUrlExpired: valid signature but the session window has passed
    """
    unsigned, sep, signature = url.rpartition(f"&{SIGNATURE_PARAM}=")
    if not sep or not unsigned:
        raise SignatureMismatch("URL has no trailing :signature parameter")
    if not _HEX_DIGEST.fullmatch(signature):
        raise SignatureMismatch("signature is not a 64 character hex digest")

    expected = sign_url(unsigned, secret)
    if not hmac.compare_digest(expected, signature):
        raise SignatureMismatch("signature does not match")

    base_path, q, query = unsigned.partition("?")
    if not q:
        raise SignatureMismatch("URL has no query string")
    parsed = ParsedEmbedUrl(
        base_path=base_path,
        params=tuple(parse_qsl(query, keep_blank_values=True)),
        signature=signature,
    )

    if check_expiry:
        current = int(time.time()) if now is None else int(now)
        if current >= parsed.expires_at:
            raise EmbedUrlExpired("embed session window has elapsed")
    return parsed
