"""Role registry: per-role capabilities injected into the session components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol

from roleauth.auth.errors import ValidationFailed
from roleauth.auth.models import Principal
from roleauth.core.config import AuthConfig


class CredentialStore(Protocol):
    """Principal persistence contract consumed by the session subsystem."""

    def find_by_identifier(self, role: str, identifier: str) -> Principal | None: ...

    def find_by_id(self, principal_id: str) -> Principal | None: ...

    def create_principal(self, principal: Principal) -> Principal: ...

    def save_principal(self, principal: Principal) -> None: ...

    def touch_last_authenticated(self, principal_id: str) -> None: ...

    def set_active(self, principal_id: str, active: bool) -> bool: ...

    def soft_delete(self, principal_id: str) -> bool: ...


@dataclass(frozen=True)
class RoleDefinition:
    """Capabilities of one principal role."""

    name: str
    store: CredentialStore
    self_register: bool = False
    # Empty means any profile field is accepted.
    profile_fields: frozenset[str] = field(default_factory=frozenset)

    def check_profile(self, profile: dict) -> None:
        if not self.profile_fields:
            return
        unknown = sorted(set(profile) - self.profile_fields)
        if unknown:
            raise ValidationFailed(
                f"Unsupported profile fields for role {self.name}: {', '.join(unknown)}"
            )


class RoleRegistry:
    """Lookup table from role tag to ``RoleDefinition``."""

    def __init__(self, roles: Iterable[RoleDefinition]) -> None:
        self._roles: dict[str, RoleDefinition] = {}
        for role in roles:
            self._roles[role.name.strip().lower()] = role
        if not self._roles:
            raise ValueError("At least one role must be configured")

    @classmethod
    def from_config(cls, config: AuthConfig, store: CredentialStore) -> "RoleRegistry":
        """Build registry sharing one credential store across configured roles."""
        return cls(
            RoleDefinition(
                name=name,
                store=store,
                self_register=name in config.self_register_roles,
            )
            for name in config.roles
        )

    @property
    def names(self) -> list[str]:
        return sorted(self._roles)

    def __contains__(self, role: object) -> bool:
        return isinstance(role, str) and role.strip().lower() in self._roles

    def get(self, role: str) -> RoleDefinition:
        """Return role definition or raise ``ValidationFailed`` for unknown roles."""
        definition = self._roles.get((role or "").strip().lower())
        if definition is None:
            raise ValidationFailed(f"Unknown role: {role}")
        return definition

    def store_for(self, role: str) -> CredentialStore:
        return self.get(role).store
