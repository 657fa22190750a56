"""Tests for signed embed URL construction and verification."""
import dataclasses
import pickle
import re
from urllib.parse import parse_qsl

import pytest

from sigma_embed.security import (
    EmbedMode,
    EmbedSecret,
    EmbedUrlExpired,
    EncodingError,
    InvalidConfig,
    SignatureMismatch,
    build_signed_url,
    canonical_url,
    sign_url,
    verify_signed_url,
)
from sigma_embed.security import signed_embed

GOLDEN_UNSIGNED = (
    "https://example.com/embed/abc?:client_id=client1&:mode=view"
    "&:external_user_id=user%40example.com&:session_length=3600"
    "&:time=1700000000&:nonce=deadbeef&:allow_export=true"
)
GOLDEN_SIGNATURE = "4e4e2c19f7612a52e7d91bca88dde3d8700b922227745ebb41cdcf989f8044a0"

USERBACKED_UNSIGNED = (
    "https://example.com/embed/abc?:client_id=client1&:mode=userbacked"
    "&:external_user_id=user%40example.com&:session_length=3600"
    "&:time=1700000000&:nonce=deadbeef&:email=user%40example.com"
    "&:external_user_team=My%20Team&:account_type=explorer"
)
USERBACKED_SIGNATURE = "e8899924dfd004bab0d2bca797f1e48f9ee8d3213315a023d26014e6d3d28586"

HEX64 = re.compile(r"^[0-9a-f]{64}$")


def _signature(url: str) -> str:
    return url.rsplit("&:signature=", 1)[1]


@pytest.fixture()
def pinned(monkeypatch):
    """Pin the nonce and clock used by build_signed_url."""
    monkeypatch.setattr(signed_embed, "generate_nonce", lambda: "deadbeef")
    monkeypatch.setattr(signed_embed.time, "time", lambda: 1700000000.9)


class TestGoldenValues:
    def test_canonical_url_order_and_encoding(self, embed_config):
        assert canonical_url(embed_config, 1700000000, "deadbeef") == GOLDEN_UNSIGNED

    def test_sign_url_matches_reference_digest(self):
        assert sign_url(GOLDEN_UNSIGNED, "test-secret") == GOLDEN_SIGNATURE

    def test_build_signed_url_with_pinned_nonce_and_time(self, embed_config, pinned):
        url = build_signed_url(embed_config)
        assert url == f"{GOLDEN_UNSIGNED}&:signature={GOLDEN_SIGNATURE}"

    def test_userbacked_parameters(self, userbacked_config, pinned):
        url = build_signed_url(userbacked_config)
        assert url == f"{USERBACKED_UNSIGNED}&:signature={USERBACKED_SIGNATURE}"
        assert ":allow_export" not in url


class TestBuildSignedUrl:
    def test_signature_is_64_lowercase_hex(self, embed_config, userbacked_config):
        for config in (embed_config, userbacked_config):
            assert HEX64.match(_signature(build_signed_url(config)))

    def test_signature_is_last_parameter(self, embed_config):
        url = build_signed_url(
            dataclasses.replace(embed_config, filters=(("Region", "West"),))
        )
        keys = [k for k, _ in parse_qsl(url.split("?", 1)[1])]
        assert keys[-1] == ":signature"
        assert keys[:6] == [
            ":client_id",
            ":mode",
            ":external_user_id",
            ":session_length",
            ":time",
            ":nonce",
        ]
        assert keys[6:8] == [":allow_export", "Region"]

    def test_two_calls_use_distinct_nonces(self, embed_config):
        first = verify_signed_url(build_signed_url(embed_config), "test-secret")
        second = verify_signed_url(build_signed_url(embed_config), "test-secret")
        assert first.nonce != second.nonce
        assert first.signature != second.signature

    def test_nonce_has_128_bits(self, embed_config):
        parsed = verify_signed_url(build_signed_url(embed_config), "test-secret")
        assert re.fullmatch(r"[0-9a-f]{32}", parsed.nonce)

    def test_time_is_current_whole_seconds(self, embed_config, monkeypatch):
        monkeypatch.setattr(signed_embed.time, "time", lambda: 1712345678.42)
        parsed = verify_signed_url(build_signed_url(embed_config), "test-secret")
        assert parsed.get(":time") == "1712345678"

    def test_secret_never_in_output(self, embed_config):
        url = build_signed_url(embed_config)
        assert "test-secret" not in url
        assert "test-secret" not in repr(embed_config)
        assert "test-secret" not in str(embed_config.secret)

    def test_config_validated_once_per_url(self, embed_config, monkeypatch):
        calls = []
        original = signed_embed.EmbedConfig.validate

        def counting_validate(self):
            calls.append(self)
            return original(self)

        monkeypatch.setattr(signed_embed.EmbedConfig, "validate", counting_validate)
        build_signed_url(embed_config)
        assert calls == [embed_config]

    def test_allow_export_false(self, embed_config):
        url = build_signed_url(dataclasses.replace(embed_config, allow_export=False))
        assert ":allow_export=false" in url

    def test_userbacked_email_override(self, userbacked_config):
        config = dataclasses.replace(userbacked_config, email="viewer@example.com")
        url = build_signed_url(config)
        assert ":email=viewer%40example.com" in url


class TestAvalanche:
    """Changing any single signed input changes the signature."""

    @pytest.mark.parametrize(
        "changes",
        [
            {"client_id": "client2"},
            {"external_user_id": "other@example.com"},
            {"session_length": 3601},
            {"mode": EmbedMode.EXPLORE},
            {"allow_export": False},
            {"filters": (("Region", "West"),)},
            {"base_path": "https://example.com/embed/abd"},
        ],
    )
    def test_config_field_changes_signature(self, embed_config, changes):
        base = sign_url(canonical_url(embed_config, 1700000000, "deadbeef"), "test-secret")
        changed = dataclasses.replace(embed_config, **changes)
        other = sign_url(canonical_url(changed, 1700000000, "deadbeef"), "test-secret")
        assert other != base

    def test_time_changes_signature(self, embed_config):
        a = sign_url(canonical_url(embed_config, 1700000000, "deadbeef"), "test-secret")
        b = sign_url(canonical_url(embed_config, 1700000001, "deadbeef"), "test-secret")
        assert a != b

    def test_nonce_changes_signature(self, embed_config):
        a = sign_url(canonical_url(embed_config, 1700000000, "deadbeef"), "test-secret")
        b = sign_url(canonical_url(embed_config, 1700000000, "deadbeee"), "test-secret")
        assert a != b

    def test_secret_changes_signature(self):
        assert sign_url(GOLDEN_UNSIGNED, "test-secret2") != GOLDEN_SIGNATURE


class TestValidation:
    def test_userbacked_requires_team(self, userbacked_config):
        with pytest.raises(InvalidConfig, match="team"):
            build_signed_url(dataclasses.replace(userbacked_config, team=None))

    def test_userbacked_requires_account_type(self, userbacked_config):
        with pytest.raises(InvalidConfig, match="account_type"):
            build_signed_url(dataclasses.replace(userbacked_config, account_type=""))

    def test_view_rejects_team(self, embed_config):
        with pytest.raises(InvalidConfig, match="userbacked"):
            build_signed_url(dataclasses.replace(embed_config, team="My Team"))

    def test_explore_rejects_account_type_and_email(self, embed_config):
        config = dataclasses.replace(
            embed_config,
            mode=EmbedMode.EXPLORE,
            account_type="viewer",
            email="x@example.com",
        )
        with pytest.raises(InvalidConfig):
            build_signed_url(config)

    def test_userbacked_rejects_filters(self, userbacked_config):
        config = dataclasses.replace(userbacked_config, filters=(("Region", "West"),))
        with pytest.raises(InvalidConfig, match="filters"):
            build_signed_url(config)

    @pytest.mark.parametrize(
        "base_path",
        [
            "",
            "example.com/embed/abc",
            "ftp://example.com/embed/abc",
            "https://example.com/embed/abc?x=1",
            "https://example.com/embed/abc#frag",
            "https://example.com/embed/abc#",
            "https://example.com/embed/abc?",
        ],
    )
    def test_base_path_must_be_plain_http_url(self, embed_config, base_path):
        with pytest.raises(InvalidConfig):
            build_signed_url(dataclasses.replace(embed_config, base_path=base_path))

    @pytest.mark.parametrize("session_length", [0, -5, True, "3600", 1.5])
    def test_session_length_must_be_positive_int(self, embed_config, session_length):
        with pytest.raises(InvalidConfig, match="session_length"):
            build_signed_url(
                dataclasses.replace(embed_config, session_length=session_length)
            )

    @pytest.mark.parametrize("field", ["client_id", "external_user_id"])
    def test_required_text_fields(self, embed_config, field):
        with pytest.raises(InvalidConfig, match=field):
            build_signed_url(dataclasses.replace(embed_config, **{field: "  "}))

    def test_empty_secret_rejected(self, embed_config):
        with pytest.raises(InvalidConfig, match="secret"):
            build_signed_url(dataclasses.replace(embed_config, secret=EmbedSecret("")))

    def test_unknown_mode(self):
        with pytest.raises(InvalidConfig, match="mode"):
            EmbedMode.parse("edit")

    def test_mode_parse_is_case_insensitive(self):
        assert EmbedMode.parse(" UserBacked ") is EmbedMode.USERBACKED

    def test_filter_name_cannot_shadow_reserved_parameter(self, embed_config):
        config = dataclasses.replace(embed_config, filters=((":mode", "explore"),))
        with pytest.raises(InvalidConfig, match="reserved"):
            build_signed_url(config)

    def test_filter_values_must_be_strings(self, embed_config):
        config = dataclasses.replace(embed_config, filters=(("Year", 2024),))
        with pytest.raises(InvalidConfig):
            build_signed_url(config)

    def test_errors_do_not_leak_secret(self, userbacked_config):
        with pytest.raises(InvalidConfig) as excinfo:
            build_signed_url(dataclasses.replace(userbacked_config, team=None))
        assert "test-secret" not in str(excinfo.value)


class TestEncoding:
    def test_unpaired_surrogate_in_filter_value(self, embed_config):
        config = dataclasses.replace(embed_config, filters=(("Region", "We\ud800st"),))
        with pytest.raises(EncodingError):
            build_signed_url(config)

    def test_unpaired_surrogate_in_user_id(self, embed_config):
        config = dataclasses.replace(embed_config, external_user_id="\udcffuser")
        with pytest.raises(EncodingError):
            build_signed_url(config)

    def test_special_characters_round_trip(self, embed_config):
        filters = (("Region Name", "West & East=1 2"), ("Größe", "Ü/ß?#+"))
        url = build_signed_url(dataclasses.replace(embed_config, filters=filters))
        parsed = verify_signed_url(url, "test-secret")
        assert parsed.filters == dict(filters)
        # nothing unescaped can break the query apart
        assert "Region%20Name=West%20%26%20East%3D1%202" in url

    def test_uri_component_safe_characters_left_alone(self, embed_config):
        config = dataclasses.replace(embed_config, filters=(("note", "it's (ok)!*~"),))
        assert "note=it's%20(ok)!*~" in build_signed_url(config)


class TestVerifySignedUrl:
    def test_round_trip(self, embed_config):
        url = build_signed_url(embed_config)
        parsed = verify_signed_url(url, "test-secret")
        assert parsed.base_path == "https://example.com/embed/abc"
        assert parsed.mode == "view"
        assert parsed.get(":external_user_id") == "user@example.com"
        assert parsed.session_length == 3600
        assert parsed.expires_at == parsed.time + 3600
        assert parsed.signature == _signature(url)

    def test_round_trip_accepts_secret_object(self, embed_config):
        url = build_signed_url(embed_config)
        assert verify_signed_url(url, embed_config.secret).nonce

    def test_wrong_secret(self, embed_config):
        with pytest.raises(SignatureMismatch, match="does not match"):
            verify_signed_url(build_signed_url(embed_config), "not-the-secret")

    def test_tampered_parameter(self, embed_config):
        url = build_signed_url(embed_config).replace(":mode=view", ":mode=explore")
        with pytest.raises(SignatureMismatch):
            verify_signed_url(url, "test-secret")

    def test_signature_must_be_last(self, embed_config):
        url = build_signed_url(embed_config) + "&Region=West"
        with pytest.raises(SignatureMismatch):
            verify_signed_url(url, "test-secret")

    def test_missing_signature(self):
        with pytest.raises(SignatureMismatch, match="no trailing"):
            verify_signed_url(GOLDEN_UNSIGNED, "test-secret")

    def test_uppercase_signature_rejected(self):
        url = f"{GOLDEN_UNSIGNED}&:signature={GOLDEN_SIGNATURE.upper()}"
        with pytest.raises(SignatureMismatch, match="hex"):
            verify_signed_url(url, "test-secret")

    def test_golden_url_verifies(self):
        parsed = verify_signed_url(
            f"{GOLDEN_UNSIGNED}&:signature={GOLDEN_SIGNATURE}", "test-secret"
        )
        assert parsed.nonce == "deadbeef"
        assert parsed.time == 1700000000

    def test_expiry_window(self):
        url = f"{GOLDEN_UNSIGNED}&:signature={GOLDEN_SIGNATURE}"
        verify_signed_url(url, "test-secret", now=1700003599, check_expiry=True)
        with pytest.raises(EmbedUrlExpired):
            verify_signed_url(url, "test-secret", now=1700003600, check_expiry=True)

    def test_expired_is_a_signature_mismatch(self):
        assert issubclass(EmbedUrlExpired, SignatureMismatch)


class TestEmbedSecret:
    def test_repr_is_redacted(self):
        secret = EmbedSecret("hunter2")
        assert "hunter2" not in repr(secret)
        assert "hunter2" not in str(secret)
        assert secret.reveal() == b"hunter2"

    def test_cannot_be_pickled(self, embed_config):
        with pytest.raises(TypeError):
            pickle.dumps(embed_config.secret)

    def test_wrapping_is_idempotent(self):
        secret = EmbedSecret("abc")
        assert EmbedSecret(secret).reveal() == b"abc"

    def test_rejects_non_string(self):
        with pytest.raises(InvalidConfig):
            EmbedSecret(12345)

    def test_frame_origin(self, embed_config):
        assert embed_config.frame_origin == "https://example.com"
