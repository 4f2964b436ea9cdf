"""Authentication service for join, login, refresh, logout and auth verification."""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any, Callable

from roleauth.auth.audit import record_security_event
from roleauth.auth.errors import (
    AuthenticationFailed,
    Forbidden,
    InvalidToken,
    ValidationFailed,
)
from roleauth.auth.issuer import SessionIssuer
from roleauth.auth.ledger import RevocationLedger
from roleauth.auth.models import Principal, SessionPair, TokenKind, utc_now
from roleauth.auth.repository import normalize_identifier
from roleauth.auth.resolver import AuthContext, PrincipalResolver
from roleauth.auth.roles import CredentialStore, RoleRegistry
from roleauth.auth.rotator import RefreshRotator, RotationResult
from roleauth.auth.tokens import TokenCodec
from roleauth.core.config import AuthConfig
from roleauth.core.security import PasswordHasher, Pbkdf2PasswordHasher

LOGGER = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
# Precomputed so unknown identifiers cost the same as a wrong password.
_DUMMY_HASH = Pbkdf2PasswordHasher().hash("roleauth-timing-equalizer")


class AuthService:
    """Role-parameterized session lifecycle over injected stores."""

    def __init__(
        self,
        roles: RoleRegistry,
        ledger: RevocationLedger,
        config: AuthConfig,
        *,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize service dependencies."""
        self._roles = roles
        self._ledger = ledger
        self._config = config
        self._hasher: PasswordHasher = hasher or Pbkdf2PasswordHasher()
        self.codec = TokenCodec(config.secret_key, config.issuer, clock=clock)
        self.issuer = SessionIssuer(
            self.codec,
            ledger,
            access_ttl_seconds=config.access_token_ttl_seconds,
            refresh_ttl_seconds=config.refresh_token_ttl_seconds,
        )
        self.rotator = RefreshRotator(self.codec, ledger, self.issuer, roles)
        self.resolver = PrincipalResolver(self.codec, roles)

    @property
    def enabled(self) -> bool:
        """Return whether auth checks should be enforced."""
        return self._config.enabled

    @property
    def roles(self) -> RoleRegistry:
        return self._roles

    def bootstrap_admin_user(self) -> Principal | None:
        """Ensure bootstrap admin principal exists from configured credentials."""
        if not self._config.admin_password or "admin" not in self._roles:
            return None
        store = self._roles.store_for("admin")
        existing = store.find_by_identifier("admin", self._config.admin_email)
        if existing is not None:
            return existing
        principal = store.create_principal(
            Principal(
                principal_id=uuid.uuid4().hex,
                role="admin",
                identifier=self._config.admin_email,
                password_hash=self._hasher.hash(self._config.admin_password),
            )
        )
        record_security_event(
            "principal_bootstrapped", principal_id=principal.principal_id, role="admin"
        )
        return principal

    def _validate_credentials(self, identifier: str, password: str) -> str:
        key = normalize_identifier(identifier)
        if not key:
            raise ValidationFailed("Identifier is required")
        if "@" in key and not _EMAIL_RE.match(key):
            raise ValidationFailed("Identifier is not a valid email address")
        if not password:
            raise ValidationFailed("Password is required")
        return key

    def create_principal(
        self,
        role: str,
        identifier: str,
        password: str,
        profile: dict[str, Any] | None = None,
        *,
        self_service: bool = True,
    ) -> Principal:
        """Create a principal of ``role`` without opening a session.

        ``self_service`` registrations are limited to roles configured for
        public join; administrative provisioning passes ``False``.
        """
        definition = self._roles.get(role)
        if self_service and not definition.self_register:
            raise Forbidden(f"Self registration is disabled for role {definition.name}")
        key = self._validate_credentials(identifier, password)
        if len(password) < self._config.password_min_length:
            raise ValidationFailed(
                f"Password must be at least {self._config.password_min_length} characters"
            )
        profile = dict(profile or {})
        definition.check_profile(profile)

        principal = definition.store.create_principal(
            Principal(
                principal_id=uuid.uuid4().hex,
                role=definition.name,
                identifier=key,
                password_hash=self._hasher.hash(password),
                profile=profile,
            )
        )
        record_security_event(
            "principal_registered",
            principal_id=principal.principal_id,
            role=principal.role,
        )
        return principal

    def register(
        self,
        role: str,
        identifier: str,
        password: str,
        profile: dict[str, Any] | None = None,
    ) -> tuple[Principal, SessionPair]:
        """Self-service join: create a principal and open its first session."""
        principal = self.create_principal(role, identifier, password, profile)
        return principal, self.issuer.issue_for(principal)

    def login(self, role: str, identifier: str, password: str) -> tuple[Principal, SessionPair]:
        """Authenticate credentials and issue access/refresh token pair."""
        definition = self._roles.get(role)
        key = self._validate_credentials(identifier, password)
        principal = definition.store.find_by_identifier(definition.name, key)

        if principal is None:
            self._hasher.verify(password, _DUMMY_HASH)
            raise self._login_failed(definition.name, key, reason="unknown_identifier")
        if not self._hasher.verify(password, principal.password_hash):
            raise self._login_failed(definition.name, key, reason="wrong_password")
        if not principal.is_available:
            raise self._login_failed(definition.name, key, reason="principal_unavailable")

        definition.store.touch_last_authenticated(principal.principal_id)
        principal = principal.model_copy(update={"last_authenticated_at": utc_now()})
        record_security_event(
            "login_succeeded", principal_id=principal.principal_id, role=principal.role
        )
        return principal, self.issuer.issue_for(principal)

    def _login_failed(self, role: str, identifier: str, *, reason: str) -> AuthenticationFailed:
        record_security_event("login_failed", role=role, identifier=identifier, reason=reason)
        return AuthenticationFailed()

    def refresh(self, refresh_token: str, role: str | None = None) -> RotationResult:
        """Validate refresh token and rotate token pair."""
        return self.rotator.rotate(refresh_token, role=role)

    def logout(self, refresh_token: str | None) -> bool:
        """Revoke the family of the supplied refresh token when it is ours."""
        if not refresh_token:
            return False
        try:
            claims = self.codec.verify(
                refresh_token, expected_kind=TokenKind.REFRESH, verify_exp=False
            )
        except InvalidToken:
            LOGGER.info("logout_ignored_invalid_token")
            return False
        family = self._ledger.get(claims.family_id)
        if family is None or family.principal_id != claims.subject:
            return False
        revoked = self._ledger.revoke(family.family_id, reason="logout")
        if revoked:
            record_security_event(
                "logout",
                principal_id=claims.subject,
                role=claims.role,
                family_id=family.family_id,
            )
        return revoked

    def logout_all(self, principal_id: str, *, reason: str = "logout_all") -> int:
        """Revoke every session family of a principal."""
        count = self._ledger.revoke_all_for_principal(principal_id, reason=reason)
        record_security_event("logout_all", principal_id=principal_id, reason=reason)
        return count

    def authenticate(self, access_token: str) -> AuthContext:
        """Resolve the principal behind an access token."""
        return self.resolver.authenticate(access_token)

    def _principal_of_role(self, role: str, principal_id: str) -> tuple[str, CredentialStore]:
        definition = self._roles.get(role)
        principal = definition.store.find_by_id(principal_id)
        if principal is None or principal.role != definition.name:
            raise ValidationFailed(f"Unknown {definition.name} principal: {principal_id}")
        return definition.name, definition.store

    def deactivate_principal(self, role: str, principal_id: str) -> int:
        """Clear the active flag and revoke all families of the principal."""
        role, store = self._principal_of_role(role, principal_id)
        store.set_active(principal_id, False)
        record_security_event("principal_deactivated", principal_id=principal_id, role=role)
        return self._ledger.revoke_all_for_principal(principal_id, reason="principal_deactivated")

    def delete_principal(self, role: str, principal_id: str) -> int:
        """Soft-delete the principal and revoke all families of it."""
        role, store = self._principal_of_role(role, principal_id)
        store.soft_delete(principal_id)
        record_security_event("principal_deleted", principal_id=principal_id, role=role)
        return self._ledger.revoke_all_for_principal(principal_id, reason="principal_deleted")
