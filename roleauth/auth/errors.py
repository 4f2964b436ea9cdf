"""Typed error kinds raised by the session authentication subsystem.

Every kind is an ``ApiError`` so the HTTP layer renders it with a stable
``error_code``; callers inside the process branch on the exception type.
Client-facing kinds (``AuthError`` subclasses) are never used for
infrastructure failures, which raise ``StoreUnavailable`` instead.
"""

from __future__ import annotations

from typing import ClassVar

from roleauth.api.errors import ApiError, ApiErrorCode


class AuthError(ApiError):
    """Base class for client-facing authentication failures."""

    http_status: ClassVar[int] = 401
    code: ClassVar[ApiErrorCode] = ApiErrorCode.AUTH_UNAUTHENTICATED
    default_message: ClassVar[str] = "Authentication required"

    def __init__(self, message: str | None = None, *, family_id: str = "") -> None:
        super().__init__(
            status_code=self.http_status,
            error_code=self.code,
            message=message or self.default_message,
            headers={"WWW-Authenticate": "Bearer"} if self.http_status == 401 else None,
        )
        # Session family the failure concerns; logged, never sent to the client.
        self.family_id = family_id


class ValidationFailed(AuthError):
    http_status = 422
    code = ApiErrorCode.VALIDATION_ERROR
    default_message = "Invalid input"


class IdentifierTaken(AuthError):
    http_status = 409
    code = ApiErrorCode.AUTH_IDENTIFIER_TAKEN
    default_message = "Identifier already registered for this role"


class Unauthenticated(AuthError):
    """Missing, invalid, expired or revoked credentials on a protected call."""

    default_message = "Authentication required"


class AuthenticationFailed(AuthError):
    code = ApiErrorCode.AUTH_INVALID_CREDENTIALS
    default_message = "Invalid credentials"


class InvalidToken(Unauthenticated):
    code = ApiErrorCode.AUTH_TOKEN_INVALID
    default_message = "Invalid token"


class MalformedToken(InvalidToken):
    code = ApiErrorCode.AUTH_TOKEN_MALFORMED
    default_message = "Malformed token"


class TokenExpired(Unauthenticated):
    code = ApiErrorCode.AUTH_TOKEN_EXPIRED
    default_message = "Token expired"


class RevokedToken(Unauthenticated):
    code = ApiErrorCode.AUTH_TOKEN_REVOKED
    default_message = "Session has been revoked"


class PrincipalUnavailable(Unauthenticated):
    code = ApiErrorCode.AUTH_PRINCIPAL_UNAVAILABLE
    default_message = "Principal is no longer available"


class Forbidden(AuthError):
    http_status = 403
    code = ApiErrorCode.AUTH_FORBIDDEN
    default_message = "Role is not allowed to perform this operation"


class RateLimited(AuthError):
    http_status = 429
    code = ApiErrorCode.AUTH_RATE_LIMITED
    default_message = "Too many login attempts"


class StoreUnavailable(ApiError):
    """Credential store or revocation ledger could not be reached.

    Clients are told to retry the same call after ``Retry-After`` seconds.
    """

    retry_after_seconds: ClassVar[int] = 5

    def __init__(self, message: str = "Authentication store unavailable") -> None:
        super().__init__(
            status_code=503,
            error_code=ApiErrorCode.STORE_UNAVAILABLE,
            message=message,
            headers={"Retry-After": str(self.retry_after_seconds)},
        )
