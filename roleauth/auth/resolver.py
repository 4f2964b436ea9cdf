"""Principal resolver: turns an access token into an authenticated context."""

from __future__ import annotations

from dataclasses import dataclass

from roleauth.auth.errors import Forbidden, InvalidToken, PrincipalUnavailable, Unauthenticated
from roleauth.auth.models import Principal, TokenKind
from roleauth.auth.roles import RoleRegistry
from roleauth.auth.tokens import TokenCodec


@dataclass(frozen=True)
class AuthContext:
    """Authenticated principal attached to a request."""

    principal: Principal
    role: str
    family_id: str

    @property
    def principal_id(self) -> str:
        return self.principal.principal_id

    def require_role(self, *roles: str) -> None:
        """Raise ``Forbidden`` unless the context role is one of ``roles``."""
        allowed = {role.strip().lower() for role in roles}
        if self.role not in allowed:
            raise Forbidden()


class PrincipalResolver:
    """Verify access tokens and load the principal they name.

    Only token verification and a principal lookup happen here; the ledger is
    never touched, so repeated calls have no side effects.
    """

    def __init__(self, codec: TokenCodec, roles: RoleRegistry) -> None:
        self._codec = codec
        self._roles = roles

    def authenticate(self, access_token: str) -> AuthContext:
        """Return the ``AuthContext`` for a valid access token.

        Raises an ``Unauthenticated`` subclass for a missing, invalid or
        expired token and for a deactivated or deleted principal.
        """
        if not access_token:
            raise Unauthenticated("Missing bearer token")
        claims = self._codec.verify(access_token, expected_kind=TokenKind.ACCESS)
        if claims.role not in self._roles:
            raise InvalidToken("Token role is not served here")

        principal = self._roles.store_for(claims.role).find_by_id(claims.subject)
        if principal is None or not principal.is_available:
            raise PrincipalUnavailable()
        if principal.role != claims.role:
            raise InvalidToken("Token role does not match principal")
        return AuthContext(principal=principal, role=claims.role, family_id=claims.family_id)
