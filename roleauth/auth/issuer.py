"""Session issuer: mints a fresh access/refresh pair for a verified principal."""

from __future__ import annotations

import uuid

from roleauth.auth.ledger import RevocationLedger
from roleauth.auth.models import (
    Principal,
    SessionPair,
    TokenClaims,
    TokenKind,
    to_datetime,
)
from roleauth.auth.tokens import TokenCodec


class SessionIssuer:
    """Create token families and sign the pairs that belong to them."""

    def __init__(
        self,
        codec: TokenCodec,
        ledger: RevocationLedger,
        *,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        if access_ttl_seconds <= 0 or refresh_ttl_seconds <= 0:
            raise ValueError("Token TTLs must be positive")
        if access_ttl_seconds >= refresh_ttl_seconds:
            raise ValueError("Access TTL must be shorter than refresh TTL")
        self._codec = codec
        self._ledger = ledger
        self._access_ttl = access_ttl_seconds
        self._refresh_ttl = refresh_ttl_seconds

    def issue_for(self, principal: Principal) -> SessionPair:
        """Open a new family for ``principal`` and return its first pair."""
        now = self._codec.now()
        family_id = uuid.uuid4().hex
        refreshable_until = now + self._refresh_ttl
        self._ledger.create_family(
            family_id,
            refreshable_until,
            principal_id=principal.principal_id,
            role=principal.role,
        )
        return self.mint_pair(
            subject=principal.principal_id,
            role=principal.role,
            family_id=family_id,
            seq=0,
            refreshable_until=refreshable_until,
            now=now,
        )

    def mint_pair(
        self,
        *,
        subject: str,
        role: str,
        family_id: str,
        seq: int,
        refreshable_until: int,
        now: int | None = None,
    ) -> SessionPair:
        """Sign an access/refresh pair for an existing family.

        The refresh token always expires at the family ceiling and the access
        token never outlives it, so rotation cannot extend a session.
        """
        if now is None:
            now = self._codec.now()
        access_exp = min(now + self._access_ttl, refreshable_until)
        access = self._codec.issue(
            TokenClaims(
                subject=subject,
                role=role,
                kind=TokenKind.ACCESS,
                issued_at=now,
                expires_at=access_exp,
                family_id=family_id,
                seq=seq,
                jti=uuid.uuid4().hex,
            )
        )
        refresh = self._codec.issue(
            TokenClaims(
                subject=subject,
                role=role,
                kind=TokenKind.REFRESH,
                issued_at=now,
                expires_at=refreshable_until,
                family_id=family_id,
                seq=seq,
                jti=uuid.uuid4().hex,
            )
        )
        return SessionPair(
            access=access,
            refresh=refresh,
            expired_at=to_datetime(access_exp),
            refreshable_until=to_datetime(refreshable_until),
            family_id=family_id,
            principal_id=subject,
            role=role,
        )
