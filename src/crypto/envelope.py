"""Signed, encrypted transport envelopes.

A token is three base64url segments without padding::

    header.payload.signature

The header is ``{"typ": "JWT", "alg": "HS256", "enc": "A256GCM"}``. The
payload carries the AES-256-GCM ciphertext (``enc_data``), its nonce
(``iv``) and authentication tag (``tag``) plus ``iat``/``exp``. The
signature is HMAC-SHA256 over ``header.payload`` with the same 32-byte key.

Tokens without ``enc`` in the header are legacy plaintext tokens whose
payload holds the data under ``data``.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.config import settings
from src.exceptions import EnvelopeError, InvalidSignatureError, TokenExpiredError

ENCRYPTED_HEADER = {"typ": "JWT", "alg": "HS256", "enc": "A256GCM"}
PLAINTEXT_HEADER = {"typ": "JWT", "alg": "HS256"}
ENCRYPTION = "A256GCM"

KEY_BYTES = 32
IV_BYTES = 12
TAG_BYTES = 16
DEFAULT_TTL_SECONDS = 300


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    try:
        return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise EnvelopeError("Invalid token encoding") from e


def _json_segment(data: dict[str, Any]) -> str:
    return _b64encode(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def load_key(key: str | bytes) -> bytes:
    """
    Return the raw 32-byte key.

    Args:
        key: 64 hex characters or 32 raw bytes

    Raises:
        ValueError: If the key has any other form
    """
    if isinstance(key, str):
        try:
            raw = bytes.fromhex(key.strip())
        except ValueError as e:
            raise ValueError("Encryption key must be 64 hex characters") from e
    else:
        raw = bytes(key)
    if len(raw) != KEY_BYTES:
        raise ValueError(f"Encryption key must be {KEY_BYTES} bytes, got {len(raw)}")
    return raw


def _sign(signing_input: bytes, key: bytes) -> bytes:
    return hmac.new(key, signing_input, hashlib.sha256).digest()


def _seal(header: dict[str, Any], payload: dict[str, Any], key: bytes) -> str:
    signing_input = f"{_json_segment(header)}.{_json_segment(payload)}"
    signature = _sign(signing_input.encode("ascii"), key)
    return f"{signing_input}.{_b64encode(signature)}"


def _encrypted_payload(data: Any, key: bytes) -> dict[str, Any]:
    iv = os.urandom(IV_BYTES)
    plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    return {
        "enc_data": _b64encode(sealed[:-TAG_BYTES]),
        "iv": _b64encode(iv),
        "tag": _b64encode(sealed[-TAG_BYTES:]),
    }


def encrypt(data: Any, key: str | bytes, ttl: int = DEFAULT_TTL_SECONDS, now: float | None = None) -> str:
    """
    Encrypt and sign data into a short-lived token.

    Args:
        data: JSON-serialisable data
        key: 32-byte key (hex or raw)
        ttl: Seconds until the token expires
        now: Current epoch seconds (defaults to the clock)

    Returns:
        Token string
    """
    raw_key = load_key(key)
    issued_at = int(time.time() if now is None else now)
    payload = _encrypted_payload(data, raw_key)
    payload.update({"iat": issued_at, "exp": issued_at + ttl})
    return _seal(ENCRYPTED_HEADER, payload, raw_key)


def encrypt_permanent(data: Any, key: str | bytes) -> str:
    """Encrypt and sign data into a token that never expires (storage at rest)."""
    raw_key = load_key(key)
    payload = _encrypted_payload(data, raw_key)
    payload["iat"] = int(time.time())
    return _seal(ENCRYPTED_HEADER, payload, raw_key)


def sign_plaintext(data: Any, key: str | bytes, ttl: int | None = None, now: float | None = None) -> str:
    """Sign data into a legacy plaintext token (no encryption)."""
    raw_key = load_key(key)
    issued_at = int(time.time() if now is None else now)
    payload: dict[str, Any] = {"data": data, "iat": issued_at}
    if ttl is not None:
        payload["exp"] = issued_at + ttl
    return _seal(PLAINTEXT_HEADER, payload, raw_key)


def _load_json(raw: bytes, what: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EnvelopeError(f"Invalid token {what}") from e


def _open(token: str, key: str | bytes, now: float | None, require_expiry: bool) -> Any:
    raw_key = load_key(key)
    if not isinstance(token, str):
        raise EnvelopeError("Token must be a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise EnvelopeError("Token must have exactly 3 parts")
    header_segment, payload_segment, signature_segment = parts

    expected = _sign(f"{header_segment}.{payload_segment}".encode("ascii", "replace"), raw_key)
    if not hmac.compare_digest(expected, _b64decode(signature_segment)):
        raise InvalidSignatureError()

    header = _load_json(_b64decode(header_segment), "header")
    payload = _load_json(_b64decode(payload_segment), "payload")
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise EnvelopeError("Token header and payload must be objects")

    expires_at = payload.get("exp")
    if expires_at is not None:
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise EnvelopeError("Invalid token expiry")
        current = time.time() if now is None else now
        if current > expires_at:
            raise TokenExpiredError(expired_at=int(expires_at))

    if header.get("enc") == ENCRYPTION:
        if require_expiry and expires_at is None:
            raise EnvelopeError("Token has no expiry")
        try:
            ciphertext = _b64decode(payload["enc_data"])
            iv = _b64decode(payload["iv"])
            tag = _b64decode(payload["tag"])
        except (KeyError, TypeError) as e:
            raise EnvelopeError("Encrypted token is missing enc_data, iv or tag") from e
        if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
            raise EnvelopeError("Invalid nonce or tag length")
        try:
            plaintext = AESGCM(raw_key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise EnvelopeError("Decryption failed") from e
        return _load_json(plaintext, "content")

    if "enc" not in header and "data" in payload:
        return payload["data"]

    raise EnvelopeError("Unsupported token format", details={"enc": header.get("enc")})


def decrypt(token: str, key: str | bytes, now: float | None = None) -> Any:
    """
    Verify and open a token.

    The signature is checked before anything in the token is parsed.

    Args:
        token: Token string
        key: 32-byte key (hex or raw)
        now: Current epoch seconds (defaults to the clock)

    Returns:
        The original data

    Raises:
        InvalidSignatureError: If the signature does not match
        TokenExpiredError: If the token is past its expiry
        EnvelopeError: For any other structural problem
    """
    return _open(token, key, now, require_expiry=True)


def decrypt_permanent(token: str, key: str | bytes) -> Any:
    """Open a token produced by encrypt_permanent."""
    return _open(token, key, None, require_expiry=False)


def time_slot_key(
    auth: str,
    site_url: str,
    salt: str,
    now: float | None = None,
    slot: int = DEFAULT_TTL_SECONDS,
) -> bytes:
    """
    Derive the rotating key for the time slot containing ``now``.

    Args:
        auth: Shared auth secret
        site_url: Site URL (a trailing slash is ignored)
        salt: Shared salt
        now: Epoch seconds (defaults to the clock)
        slot: Slot length in seconds

    Returns:
        32-byte SHA-256 digest
    """
    current = time.time() if now is None else now
    slot_start = int(current // slot) * slot
    material = f"{auth}{site_url.rstrip('/')}{slot_start}{salt}"
    return hashlib.sha256(material.encode("utf-8")).digest()


def decrypt_with_time_keys(
    token: str,
    now: float | None = None,
    auth: str | None = None,
    site_url: str | None = None,
    salt: str | None = None,
    slot: int | None = None,
) -> Any:
    """
    Open a token keyed with the current or the previous time-slot key.

    Unset arguments come from settings.

    Raises:
        InvalidSignatureError: If neither slot key verifies the token
    """
    current = time.time() if now is None else now
    auth = settings.time_key_auth if auth is None else auth
    site_url = settings.site_url if site_url is None else site_url
    salt = settings.time_key_salt if salt is None else salt
    slot = slot or settings.time_key_slot_seconds

    for offset in (0, slot):
        key = time_slot_key(auth, site_url, salt, current - offset, slot)
        try:
            return decrypt(token, key, now=current)
        except InvalidSignatureError:
            continue
    raise InvalidSignatureError("Token does not match the current or previous time key")


def create_encrypted_request(data: Any, key: str | bytes) -> dict[str, str]:
    """Wrap data into an encrypted request body."""
    return {"jwt": encrypt(data, key, ttl=settings.token_ttl_seconds)}


def parse_encrypted_request(
    body: Any,
    headers: Mapping[str, str],
    key: str | bytes | None = None,
) -> Any:
    """
    Open an encrypted request body when the request carries one.

    A body with ``time_jwt`` is opened with the rotating time keys; a body
    with ``jwt`` sent with ``X-Encrypted: true`` is opened with ``key``.

    Args:
        body: Decoded JSON body
        headers: Request headers
        key: Static encryption key (defaults to settings.encryption_key)

    Returns:
        The decrypted body, or ``body`` unchanged when it is not encrypted

    Raises:
        EnvelopeError: If the envelope is present but cannot be opened
    """
    if not isinstance(body, dict):
        return body
    lowered = {name.lower(): value for name, value in headers.items()}

    if "time_jwt" in body:
        if not settings.time_key_enabled:
            raise EnvelopeError("Time-based encryption is not enabled")
        return decrypt_with_time_keys(body["time_jwt"])

    if lowered.get("x-encrypted", "").lower() == "true" and "jwt" in body:
        key = key or settings.encryption_key
        if not key:
            raise EnvelopeError("Encryption is not configured")
        return decrypt(body["jwt"], key)

    return body
