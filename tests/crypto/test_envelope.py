"""Tests for signed and encrypted transport envelopes."""

import base64
import json
from unittest.mock import patch

import pytest

from src.crypto.envelope import (
    create_encrypted_request,
    decrypt,
    decrypt_permanent,
    decrypt_with_time_keys,
    encrypt,
    encrypt_permanent,
    load_key,
    parse_encrypted_request,
    sign_plaintext,
    time_slot_key,
)
from src.exceptions import EnvelopeError, InvalidSignatureError, TokenExpiredError

KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
OTHER_KEY = "ff" * 32
NOW = 1_731_322_800
BODY = {"events": [{"name": "page_view", "params": {"page_title": "Café ☕"}}]}


def _segment(token: str, index: int) -> dict:
    raw = token.split(".")[index]
    return json.loads(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))


def test_encrypt_then_decrypt() -> None:
    """Test that a token opens to the original data."""
    token = encrypt(BODY, KEY, now=NOW)

    assert decrypt(token, KEY, now=NOW + 10) == BODY


def test_token_structure() -> None:
    """Test header and payload fields of an encrypted token."""
    token = encrypt(BODY, KEY, ttl=300, now=NOW)

    header = _segment(token, 0)
    payload = _segment(token, 1)
    assert token.count(".") == 2
    assert "=" not in token
    assert header == {"typ": "JWT", "alg": "HS256", "enc": "A256GCM"}
    assert payload["iat"] == NOW
    assert payload["exp"] == NOW + 300
    assert {"enc_data", "iv", "tag"} <= payload.keys()


def test_fresh_nonce_per_token() -> None:
    """Test that encrypting the same data twice gives different tokens."""
    assert encrypt(BODY, KEY, now=NOW) != encrypt(BODY, KEY, now=NOW)


def test_expired_token_rejected() -> None:
    """Test that a token past its expiry is rejected."""
    token = encrypt(BODY, KEY, ttl=300, now=NOW)

    with pytest.raises(TokenExpiredError) as exc_info:
        decrypt(token, KEY, now=NOW + 301)

    assert exc_info.value.error_code == "TOKEN_EXPIRED"


def test_wrong_key_rejected() -> None:
    """Test that a token signed with another key fails verification."""
    token = encrypt(BODY, KEY, now=NOW)

    with pytest.raises(InvalidSignatureError):
        decrypt(token, OTHER_KEY, now=NOW)


def test_tampered_payload_rejected() -> None:
    """Test that changing the payload breaks the signature."""
    header, payload, signature = encrypt(BODY, KEY, now=NOW).split(".")
    forged_payload = base64.urlsafe_b64encode(
        json.dumps({"data": {"forged": True}}).encode()
    ).rstrip(b"=").decode()

    with pytest.raises(InvalidSignatureError):
        decrypt(f"{header}.{forged_payload}.{signature}", KEY, now=NOW)


@pytest.mark.parametrize("token", ["abc", "a.b", "a.b.c.d", ""])
def test_malformed_token_rejected(token) -> None:
    """Test that tokens without three parts are rejected."""
    with pytest.raises(EnvelopeError):
        decrypt(token, KEY, now=NOW)


def test_permanent_token_has_no_expiry() -> None:
    """Test storage tokens open regardless of age."""
    token = encrypt_permanent(BODY, KEY)

    assert "exp" not in _segment(token, 1)
    assert decrypt_permanent(token, KEY) == BODY


def test_permanent_token_rejected_by_transport_decrypt() -> None:
    """Test that transport decryption requires an expiry."""
    with pytest.raises(EnvelopeError):
        decrypt(encrypt_permanent(BODY, KEY), KEY)


def test_legacy_plaintext_token() -> None:
    """Test that signed plaintext tokens are still accepted."""
    token = sign_plaintext(BODY, KEY, ttl=60, now=NOW)

    assert decrypt(token, KEY, now=NOW + 1) == BODY


def test_load_key_validation() -> None:
    """Test key format validation."""
    assert len(load_key(KEY)) == 32
    assert load_key(bytes(32)) == bytes(32)
    with pytest.raises(ValueError):
        load_key("abcd")
    with pytest.raises(ValueError):
        load_key("zz" * 32)


class TestTimeKeys:
    """Tests for rotating time-slot keys."""

    def test_key_changes_per_slot(self) -> None:
        """Test that keys differ between slots and match within one."""
        first = time_slot_key("auth", "https://example.com/", "salt", now=NOW)

        assert first == time_slot_key("auth", "https://example.com", "salt", now=NOW + 1)
        assert first != time_slot_key("auth", "https://example.com", "salt", now=NOW + 300)
        assert len(first) == 32

    def test_current_and_previous_slot_accepted(self) -> None:
        """Test that a token from the previous slot still opens."""
        key = time_slot_key("auth", "https://example.com", "salt", now=NOW)
        token = encrypt(BODY, key, ttl=600, now=NOW)

        opened = decrypt_with_time_keys(
            token, now=NOW + 301, auth="auth", site_url="https://example.com", salt="salt", slot=300
        )

        assert opened == BODY

    def test_older_slot_rejected(self) -> None:
        """Test that a token two slots old is rejected."""
        key = time_slot_key("auth", "https://example.com", "salt", now=NOW)
        token = encrypt(BODY, key, ttl=3600, now=NOW)

        with pytest.raises(InvalidSignatureError):
            decrypt_with_time_keys(
                token, now=NOW + 600, auth="auth", site_url="https://example.com", salt="salt", slot=300
            )


class TestParseEncryptedRequest:
    """Tests for parse_encrypted_request."""

    def test_plain_body_passes_through(self) -> None:
        """Test that unencrypted bodies are returned unchanged."""
        assert parse_encrypted_request(BODY, {}) is BODY

    def test_jwt_without_header_passes_through(self) -> None:
        """Test that a jwt body without X-Encrypted is left alone."""
        body = {"jwt": "x.y.z"}

        assert parse_encrypted_request(body, {"Content-Type": "application/json"}) is body

    def test_encrypted_body_opened(self) -> None:
        """Test that X-Encrypted bodies are decrypted."""
        body = create_encrypted_request(BODY, KEY)

        assert parse_encrypted_request(body, {"X-Encrypted": "true"}, KEY) == BODY

    def test_encrypted_body_without_key(self) -> None:
        """Test that an encrypted body without a configured key is rejected."""
        with patch("src.crypto.envelope.settings.encryption_key", ""):
            with pytest.raises(EnvelopeError):
                parse_encrypted_request({"jwt": "x.y.z"}, {"x-encrypted": "true"})

    def test_time_jwt_requires_feature(self) -> None:
        """Test that time-keyed bodies are rejected unless enabled."""
        with patch("src.crypto.envelope.settings.time_key_enabled", False):
            with pytest.raises(EnvelopeError):
                parse_encrypted_request({"time_jwt": "x.y.z"}, {})
