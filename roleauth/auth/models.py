"""Pydantic models for the session authentication domain."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(timestamp: int) -> datetime:
    """Convert epoch seconds into an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class Principal(BaseModel):
    """Persisted principal (a user of any role)."""

    principal_id: str
    role: str
    identifier: str
    password_hash: str
    is_active: bool = True
    profile: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = None
    last_authenticated_at: datetime | None = None

    @property
    def is_available(self) -> bool:
        """Return whether the principal may hold sessions."""
        return self.is_active and self.deleted_at is None


class TokenKind(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Minimal claim set signed into every token."""

    model_config = ConfigDict(frozen=True)

    subject: str
    role: str
    kind: TokenKind
    issued_at: int
    expires_at: int
    family_id: str
    seq: int = Field(default=0, ge=0)
    jti: str = ""

    @model_validator(mode="after")
    def _check_window(self) -> "TokenClaims":
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        return self


class SessionPair(BaseModel):
    """Access/refresh pair returned to callers plus both expiry instants."""

    access: str
    refresh: str
    expired_at: datetime
    refreshable_until: datetime
    family_id: str
    principal_id: str
    role: str


class FamilyRecord(BaseModel):
    """Revocation ledger row for one token family."""

    family_id: str
    principal_id: str
    role: str
    next_seq: int = 1
    refreshable_until: int
    revoked: bool = False
    revoked_at: int | None = None
    revoked_reason: str = ""
    created_at: int
    last_rotated_at: int | None = None


class JoinRequest(BaseModel):
    """Registration request payload."""

    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    profile: dict[str, Any] = Field(default_factory=dict)


class LoginRequest(BaseModel):
    """Login request payload."""

    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """Refresh request payload."""

    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    """Logout request payload."""

    refresh_token: str | None = None
