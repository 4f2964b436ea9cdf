from __future__ import annotations

from roleauth.api.errors import to_error_payload
from roleauth.auth.errors import (
    InvalidToken,
    MalformedToken,
    RevokedToken,
    StoreUnavailable,
    Unauthenticated,
    ValidationFailed,
)


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


def test_auth_errors_carry_status_and_code() -> None:
    revoked = RevokedToken()
    malformed = MalformedToken("bad header")

    assert isinstance(revoked, Unauthenticated)
    assert isinstance(malformed, InvalidToken)
    assert revoked.status_code == 401
    assert to_error_payload(revoked.detail, 401)["error_code"] == "AUTH_TOKEN_REVOKED"
    assert malformed.detail == {"error_code": "AUTH_TOKEN_MALFORMED", "message": "bad header"}
    assert ValidationFailed().status_code == 422


def test_store_unavailable_is_not_a_client_auth_error() -> None:
    error = StoreUnavailable()

    assert not isinstance(error, Unauthenticated)
    assert error.status_code == 503
    assert error.detail["error_code"] == "STORE_UNAVAILABLE"
