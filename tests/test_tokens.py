from __future__ import annotations

import pytest

from roleauth.auth.errors import InvalidToken, MalformedToken, TokenExpired
from roleauth.auth.models import TokenClaims, TokenKind
from roleauth.auth.tokens import TokenCodec
from roleauth.core.security import build_signed_token

from auth_fixtures import T0, FakeClock


def _claims(kind: TokenKind = TokenKind.ACCESS, **overrides) -> TokenClaims:
    values = {
        "subject": "p1",
        "role": "member",
        "kind": kind,
        "issued_at": T0,
        "expires_at": T0 + 60,
        "family_id": "fam-1",
        "seq": 2,
        "jti": "j1",
    }
    values.update(overrides)
    return TokenClaims(**values)


def test_token_codec_issue_and_verify_round_trip() -> None:
    codec = TokenCodec("secret", "issuer", clock=FakeClock())
    claims = _claims()

    verified = codec.verify(codec.issue(claims), expected_kind=TokenKind.ACCESS)

    assert verified == claims


def test_token_codec_rejects_kind_mismatch() -> None:
    codec = TokenCodec("secret", "issuer", clock=FakeClock())
    refresh = codec.issue(_claims(TokenKind.REFRESH))

    with pytest.raises(InvalidToken) as exc:
        codec.verify(refresh, expected_kind=TokenKind.ACCESS)

    assert exc.value.status_code == 401


def test_token_codec_rejects_other_secret_and_issuer() -> None:
    clock = FakeClock()
    token = TokenCodec("secret", "issuer", clock=clock).issue(_claims())

    with pytest.raises(InvalidToken):
        TokenCodec("other-secret", "issuer", clock=clock).verify(token)
    with pytest.raises(InvalidToken):
        TokenCodec("secret", "other-issuer", clock=clock).verify(token)


def test_token_codec_expired_token_raises_token_expired() -> None:
    clock = FakeClock()
    codec = TokenCodec("secret", "issuer", clock=clock)
    token = codec.issue(_claims())

    clock.advance(60)

    with pytest.raises(TokenExpired):
        codec.verify(token)
    assert codec.verify(token, verify_exp=False).subject == "p1"


def test_token_codec_reports_malformed_tokens() -> None:
    codec = TokenCodec("secret", "issuer", clock=FakeClock())

    with pytest.raises(MalformedToken):
        codec.verify("garbage")


def test_token_codec_rejects_signed_payload_with_missing_claims() -> None:
    codec = TokenCodec("secret", "issuer", clock=FakeClock())
    token = build_signed_token({"iss": "issuer", "sub": "p1", "exp": T0 + 60}, "secret")

    with pytest.raises(MalformedToken):
        codec.verify(token)


def test_token_codec_requires_secret() -> None:
    with pytest.raises(ValueError):
        TokenCodec("", "issuer")


def test_token_claims_require_positive_window() -> None:
    with pytest.raises(ValueError):
        _claims(expires_at=T0)
