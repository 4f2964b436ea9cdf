"""Public API response contracts."""

from roleauth.api.contracts.models import (
    ApiErrorResponse,
    AuthMeResponse,
    HealthResponse,
    LogoutResponse,
    PrincipalResponse,
    SessionPairResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthMeResponse",
    "HealthResponse",
    "LogoutResponse",
    "PrincipalResponse",
    "SessionPairResponse",
]
