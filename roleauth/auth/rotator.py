"""Refresh rotator: exchanges a refresh token for a new pair exactly once.

Per family the ledger walks ``ACTIVE(n) -> ACTIVE(n + 1)`` on a valid
rotation. Presenting any refresh token other than the most recent one moves
the family to ``REVOKED``: reuse is treated as leakage, so the whole family
is invalidated and the client has to log in again.

The most recent refresh token of a family carries ``seq == next_seq - 1``.
Winning the ledger compare-and-advance is the only way to mint its
successor; a lost race counts as reuse.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from roleauth.auth.audit import record_security_event
from roleauth.auth.errors import (
    InvalidToken,
    PrincipalUnavailable,
    RevokedToken,
    TokenExpired,
)
from roleauth.auth.issuer import SessionIssuer
from roleauth.auth.ledger import RevocationLedger
from roleauth.auth.models import FamilyRecord, Principal, SessionPair, TokenClaims, TokenKind
from roleauth.auth.roles import RoleRegistry
from roleauth.auth.tokens import TokenCodec

LOGGER = logging.getLogger(__name__)


class RotationResult(NamedTuple):
    pair: SessionPair
    principal: Principal


class RefreshRotator:
    """Validate a presented refresh token, rotate its family, punish replay."""

    def __init__(
        self,
        codec: TokenCodec,
        ledger: RevocationLedger,
        issuer: SessionIssuer,
        roles: RoleRegistry,
    ) -> None:
        self._codec = codec
        self._ledger = ledger
        self._issuer = issuer
        self._roles = roles

    def rotate(self, refresh_token: str, *, role: str | None = None) -> RotationResult:
        """Return the successor pair of ``refresh_token`` or raise an ``AuthError``."""
        claims = self._codec.verify(refresh_token, expected_kind=TokenKind.REFRESH)
        if claims.role not in self._roles:
            raise InvalidToken("Token role is not served here")
        if role is not None and claims.role != role.strip().lower():
            raise InvalidToken("Token was issued for another role")

        family = self._ledger.get(claims.family_id)
        if family is None or family.revoked:
            raise RevokedToken(family_id=claims.family_id)
        if family.principal_id != claims.subject or family.role != claims.role:
            raise InvalidToken(
                "Token subject does not match its session", family_id=family.family_id
            )

        expected_seq = claims.seq + 1
        if family.next_seq != expected_seq:
            self._revoke_on_reuse(family, claims, reason="refresh_replay")
            raise RevokedToken(family_id=family.family_id)

        now = self._codec.now()
        if now >= family.refreshable_until:
            raise TokenExpired(
                "Session can no longer be refreshed", family_id=family.family_id
            )

        principal = self._roles.store_for(claims.role).find_by_id(claims.subject)
        if principal is None or not principal.is_available:
            self._ledger.revoke(family.family_id, reason="principal_unavailable")
            record_security_event(
                "family_revoked",
                principal_id=claims.subject,
                role=claims.role,
                family_id=family.family_id,
                reason="principal_unavailable",
            )
            raise PrincipalUnavailable(family_id=family.family_id)
        if principal.role != claims.role:
            raise InvalidToken(
                "Token role does not match principal", family_id=family.family_id
            )

        if not self._ledger.advance(family.family_id, expected_seq):
            self._revoke_on_reuse(family, claims, reason="concurrent_refresh")
            raise RevokedToken(family_id=family.family_id)

        pair = self._issuer.mint_pair(
            subject=claims.subject,
            role=claims.role,
            family_id=family.family_id,
            seq=expected_seq,
            refreshable_until=family.refreshable_until,
            now=now,
        )
        LOGGER.info(
            "session_rotated",
            extra={
                "principal_id": claims.subject,
                "role": claims.role,
                "family_id": family.family_id,
            },
        )
        return RotationResult(pair=pair, principal=principal)

    def _revoke_on_reuse(self, family: FamilyRecord, claims: TokenClaims, *, reason: str) -> None:
        self._ledger.revoke(family.family_id, reason=reason)
        record_security_event(
            "refresh_replay_detected",
            principal_id=claims.subject,
            role=claims.role,
            family_id=family.family_id,
            reason=reason,
        )
