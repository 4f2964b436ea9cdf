"""Token codec: signs claim sets into compact tokens and verifies them back.

Verification is a pure function of the token string, the server secret and
the clock. It never consults a store, so access-token checks stay stateless;
refresh tokens are additionally checked against the revocation ledger by the
rotator.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable

from pydantic import ValidationError

from roleauth.auth.errors import InvalidToken, MalformedToken, TokenExpired
from roleauth.auth.models import TokenClaims, TokenKind
from roleauth.core.security import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
    build_signed_token,
    decode_signed_token,
)

# Short wire names keep tokens compact; "exp"/"iat"/"sub" follow JWT usage.
_WIRE_NAMES = {
    "subject": "sub",
    "role": "role",
    "kind": "typ",
    "issued_at": "iat",
    "expires_at": "exp",
    "family_id": "fam",
    "seq": "seq",
    "jti": "jti",
}


class TokenCodec:
    """Serialize ``TokenClaims`` into signed strings and back."""

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._issuer = issuer
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def issue(self, claims: TokenClaims) -> str:
        """Sign claims into a token string."""
        payload: dict[str, Any] = {"iss": self._issuer}
        for field_name, wire_name in _WIRE_NAMES.items():
            payload[wire_name] = getattr(claims, field_name)
        payload["typ"] = str(claims.kind)
        if not payload["jti"]:
            payload["jti"] = uuid.uuid4().hex
        return build_signed_token(payload, self._secret_key)

    def verify(
        self,
        token: str,
        *,
        expected_kind: TokenKind | None = None,
        verify_exp: bool = True,
    ) -> TokenClaims:
        """Verify signature, structure, issuer, kind and expiry of a token."""
        try:
            payload = decode_signed_token(
                token,
                self._secret_key,
                now=self.now(),
                verify_exp=verify_exp,
            )
        except MalformedTokenError as exc:
            raise MalformedToken(str(exc)) from exc
        except InvalidSignatureError as exc:
            raise InvalidToken(str(exc)) from exc
        except TokenExpiredError as exc:
            raise TokenExpired(str(exc)) from exc

        if str(payload.get("iss") or "") != self._issuer:
            raise InvalidToken("Invalid token issuer")

        try:
            claims = TokenClaims(
                **{
                    field_name: payload.get(wire_name)
                    for field_name, wire_name in _WIRE_NAMES.items()
                }
            )
        except ValidationError as exc:
            raise MalformedToken("Invalid token claims") from exc

        if expected_kind is not None and claims.kind != expected_kind:
            raise InvalidToken("Invalid token type")
        return claims
