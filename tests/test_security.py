from __future__ import annotations

import pytest

from roleauth.core.security import (
    InvalidSignatureError,
    MalformedTokenError,
    Pbkdf2PasswordHasher,
    TokenExpiredError,
    build_signed_token,
    decode_signed_token,
    hash_password,
    verify_password,
)


def test_hash_password_is_salted_and_verifiable() -> None:
    first = hash_password("correct horse")
    second = hash_password("correct horse")

    assert first != second
    assert first.startswith("pbkdf2_sha256$")
    assert verify_password("correct horse", first)
    assert not verify_password("wrong horse", first)


def test_verify_password_rejects_garbage_hash() -> None:
    assert verify_password("x", "not-a-hash") is False
    assert verify_password("x", "md5$1$a$b") is False


def test_pbkdf2_hasher_round_trip() -> None:
    hasher = Pbkdf2PasswordHasher()

    stored = hasher.hash("s3cret-pass")

    assert hasher.verify("s3cret-pass", stored)
    assert not hasher.verify("other", stored)


def test_decode_signed_token_returns_payload() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")

    payload = decode_signed_token(token, "k", now=100)

    assert payload == {"sub": "p1", "exp": 200}


def test_decode_signed_token_rejects_other_secret() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")

    with pytest.raises(InvalidSignatureError):
        decode_signed_token(token, "other", now=100)


def test_decode_signed_token_rejects_tampered_payload() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")
    forged_payload = build_signed_token({"sub": "p2", "exp": 200}, "k").split(".")[1]
    header, _payload, signature = token.split(".")

    with pytest.raises(InvalidSignatureError):
        decode_signed_token(f"{header}.{forged_payload}.{signature}", "k", now=100)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a..c", "a.b.c.d"])
def test_decode_signed_token_rejects_malformed_structure(token: str) -> None:
    with pytest.raises(MalformedTokenError):
        decode_signed_token(token, "k", now=100)


def test_decode_signed_token_expiry_is_exclusive() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")

    decode_signed_token(token, "k", now=199)
    with pytest.raises(TokenExpiredError):
        decode_signed_token(token, "k", now=200)


def test_decode_signed_token_can_skip_expiry() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")

    payload = decode_signed_token(token, "k", now=10_000, verify_exp=False)

    assert payload["sub"] == "p1"


def test_decode_signed_token_rejects_padded_signature() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")

    with pytest.raises(MalformedTokenError):
        decode_signed_token(f"{token}!!!!", "k", now=100)


def test_decode_signed_token_rejects_standard_alphabet_signature() -> None:
    token = build_signed_token({"sub": "p1", "exp": 200}, "k")
    header, payload, signature = token.split(".")
    swapped = signature.replace("-", "+").replace("_", "/")
    if swapped == signature:
        swapped = signature[:-1] + ("+" if signature[-1] != "+" else "/")

    with pytest.raises((MalformedTokenError, InvalidSignatureError)):
        decode_signed_token(f"{header}.{payload}.{swapped}", "k", now=100)
