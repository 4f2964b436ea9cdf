"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from typing import Any, Protocol

PBKDF2_ROUNDS = 120_000


class TokenError(ValueError):
    """Base error for signed token decoding failures."""


class MalformedTokenError(TokenError):
    """Token structure or payload cannot be parsed."""


class InvalidSignatureError(TokenError):
    """Token signature does not match the server secret."""


class TokenExpiredError(TokenError):
    """Token ``exp`` claim lies in the past."""


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def _b64url_decode_strict(value: str) -> bytes:
    """Decode URL-safe base64, rejecting foreign characters and non-canonical input."""
    padding = "=" * (-len(value) % 4)
    raw = base64.b64decode((value + padding).encode("utf-8"), altchars=b"-_", validate=True)
    if _b64url_encode(raw) != value:
        raise ValueError("Non-canonical base64 segment")
    return raw


def hash_password(password: str) -> str:
    """Hash password using PBKDF2-HMAC-SHA256 with random salt."""
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ROUNDS)
    return f"pbkdf2_sha256${PBKDF2_ROUNDS}${_b64url_encode(salt)}${_b64url_encode(derived)}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored PBKDF2 hash."""
    try:
        algo, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        if algo != "pbkdf2_sha256":
            return False
        rounds = int(rounds_raw)
        salt = _b64url_decode(salt_b64)
        expected = _b64url_decode(digest_b64)
    except (ValueError, TypeError, AttributeError):
        return False

    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(derived, expected)


class PasswordHasher(Protocol):
    """One-way, salted, verifiable password hashing primitive."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, stored_hash: str) -> bool: ...


class Pbkdf2PasswordHasher:
    """Default ``PasswordHasher`` backed by PBKDF2-HMAC-SHA256."""

    def hash(self, password: str) -> str:
        return hash_password(password)

    def verify(self, password: str, stored_hash: str) -> bool:
        return verify_password(password, stored_hash)


def _sign(signing_input: bytes, secret_key: str) -> bytes:
    return hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT-like 3-part structure."""
    header = {"alg": "HS256", "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(
        json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    )
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature_part = _b64url_encode(_sign(signing_input, secret_key))
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(
    token: str,
    secret_key: str,
    *,
    now: int | None = None,
    verify_exp: bool = True,
) -> dict[str, Any]:
    """Decode and verify compact signed token, raising ``TokenError`` on failure."""
    parts = (token or "").split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedTokenError("Malformed token")
    header_part, payload_part, signature_part = parts

    try:
        got_sig = _b64url_decode_strict(signature_part)
    except (ValueError, TypeError) as exc:
        raise MalformedTokenError("Malformed token signature") from exc

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    if not hmac.compare_digest(_sign(signing_input, secret_key), got_sig):
        raise InvalidSignatureError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise MalformedTokenError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise MalformedTokenError("Invalid token payload")

    if verify_exp:
        try:
            exp = int(payload.get("exp") or 0)
        except (TypeError, ValueError) as exc:
            raise MalformedTokenError("Invalid token expiry") from exc
        now_ts = int(time.time()) if now is None else now
        if not exp or exp <= now_ts:
            raise TokenExpiredError("Token expired")

    return payload
