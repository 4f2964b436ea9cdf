"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class PrincipalResponse(BaseModel):
    """Public view of an authenticated principal."""

    principal_id: str
    role: str
    identifier: str
    is_active: bool
    profile: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    last_authenticated_at: datetime | None = None


class SessionPairResponse(BaseModel):
    """Token pair issued by join, login and refresh."""

    access: str
    refresh: str
    expired_at: datetime = Field(description="Access token expiry (ISO-8601)")
    refreshable_until: datetime = Field(
        description="Absolute refresh ceiling of the session family (ISO-8601)"
    )
    token_type: Literal["bearer"] = "bearer"
    principal: PrincipalResponse | None = None


class AuthMeResponse(BaseModel):
    """Current principal endpoint response payload."""

    principal: PrincipalResponse
    role: str
    family_id: str


class LogoutResponse(BaseModel):
    """Logout response payload."""

    status: Literal["ok"]
    revoked_families: int = 0
