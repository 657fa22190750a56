#!/usr/bin/env python3
"""
Sign or verify embed URLs from the command line.

Usage:
  - Set EMBED_SECRET, EMBED_CLIENT_ID, EMBED_PATH (and optionally the other
    EMBED_* variables) in the environment or .env
  - python scripts/embed_url.py sign
  - python scripts/embed_url.py verify '<signed url>' [--check-expiry]

The secret is only read from the environment, never from arguments, so it
does not end up in shell history or process listings.

Exit codes:
  0 on success, 1 if verification fails, 2 on configuration errors.
"""
from __future__ import annotations

import argparse
import os
import sys

# Ensure repository root is on sys.path so `import sigma_embed` works when running directly
_THIS_DIR = os.path.dirname(os.path.abspath(__file__))
_REPO_ROOT = os.path.abspath(os.path.join(_THIS_DIR, os.pardir))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from config.settings import Config  # noqa: E402
from sigma_embed.embed_config import embed_config_from_mapping  # noqa: E402
from sigma_embed.security import (  # noqa: E402
    EmbedError,
    SignatureMismatch,
    build_signed_url,
    verify_signed_url,
)
from sigma_embed.structured_logging import configure_cli_structlog  # noqa: E402


def settings_mapping(config_class=Config) -> dict:
    """Upper-case attributes of a settings class, as Flask would load them."""
    return {k: getattr(config_class, k) for k in dir(config_class) if k.isupper()}


def cmd_sign(args, settings: dict) -> int:
    try:
        url = build_signed_url(embed_config_from_mapping(settings))
    except EmbedError as e:
        print(f"Cannot sign: {e}", file=sys.stderr)
        return 2
    print(url)
    return 0


def cmd_verify(args, settings: dict) -> int:
    secret = settings.get("EMBED_SECRET")
    if not secret:
        print("Cannot verify: EMBED_SECRET not configured", file=sys.stderr)
        return 2
    try:
        parsed = verify_signed_url(args.url, secret, check_expiry=args.check_expiry)
    except SignatureMismatch as e:
        print(f"FAIL: {e}")
        return 1
    print(
        f"OK: mode={parsed.mode} user={parsed.get(':external_user_id')} "
        f"expires_at={parsed.expires_at}"
    )
    return 0


def main(argv: list[str] | None = None, settings: dict | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sign or verify Sigma embed URLs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sign", help="Print a freshly signed embed URL")

    verify = sub.add_parser("verify", help="Check the signature of an embed URL")
    verify.add_argument("url", help="Signed embed URL")
    verify.add_argument(
        "--check-expiry",
        action="store_true",
        help="Also fail when :time + :session_length has passed",
    )

    args = parser.parse_args(argv)

    if settings is None:
        settings = settings_mapping()
    if args.command == "sign":
        return cmd_sign(args, settings)
    return cmd_verify(args, settings)


if __name__ == "__main__":
    # Keep stdout for the URL / verdict; structured logs go to stderr
    configure_cli_structlog()
    raise SystemExit(main())
