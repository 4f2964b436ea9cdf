"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from roleauth.api.contracts import (
    ApiErrorResponse,
    AuthMeResponse,
    LogoutResponse,
    PrincipalResponse,
    SessionPairResponse,
)
from roleauth.auth.errors import AuthenticationFailed
from roleauth.auth.middleware import get_auth_context, require_roles
from roleauth.auth.models import (
    JoinRequest,
    LoginRequest,
    LogoutRequest,
    Principal,
    RefreshRequest,
    SessionPair,
)
from roleauth.auth.rate_limiter import LoginRateLimiter, login_key
from roleauth.auth.resolver import AuthContext
from roleauth.auth.service import AuthService

_TOKEN_ERRORS = {401: {"model": ApiErrorResponse}, 422: {"model": ApiErrorResponse}}


def principal_response(principal: Principal) -> PrincipalResponse:
    return PrincipalResponse(
        principal_id=principal.principal_id,
        role=principal.role,
        identifier=principal.identifier,
        is_active=principal.is_active,
        profile=principal.profile,
        created_at=principal.created_at,
        updated_at=principal.updated_at,
        last_authenticated_at=principal.last_authenticated_at,
    )


def session_response(pair: SessionPair, principal: Principal) -> SessionPairResponse:
    return SessionPairResponse(
        access=pair.access,
        refresh=pair.refresh,
        expired_at=pair.expired_at,
        refreshable_until=pair.refreshable_until,
        principal=principal_response(principal),
    )


def create_auth_router(
    service: AuthService, rate_limiter: LoginRateLimiter
) -> APIRouter:
    """Build authentication router with role-scoped join/login/refresh endpoints."""
    router = APIRouter(tags=["auth"])

    @router.post(
        "/api/auth/{role}/join",
        response_model=SessionPairResponse,
        status_code=201,
        responses={403: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def join(role: str, req: JoinRequest) -> SessionPairResponse:
        """Register a principal of ``role`` and return its first token pair."""
        principal, pair = service.register(role, req.email, req.password, req.profile)
        return session_response(pair, principal)

    @router.post(
        "/api/auth/{role}/login",
        response_model=SessionPairResponse,
        responses={**_TOKEN_ERRORS, 429: {"model": ApiErrorResponse}},
    )
    def login(role: str, req: LoginRequest, request: Request) -> SessionPairResponse:
        """Authenticate principal and return token pair."""
        client_ip = (request.client.host if request.client else "") or "unknown"
        key = login_key(role, req.email)
        rate_limiter.assert_allowed(key=key, client_ip=client_ip)
        try:
            principal, pair = service.login(role, req.email, req.password)
        except AuthenticationFailed:
            rate_limiter.record_failure(key=key, client_ip=client_ip)
            raise
        rate_limiter.record_success(key=key, client_ip=client_ip)
        return session_response(pair, principal)

    @router.post(
        "/api/auth/{role}/refresh",
        response_model=SessionPairResponse,
        responses=_TOKEN_ERRORS,
    )
    def refresh(role: str, req: RefreshRequest) -> SessionPairResponse:
        """Rotate refresh token and issue new session tokens."""
        result = service.refresh(req.refresh_token, role=role)
        return session_response(result.pair, result.principal)

    @router.post("/api/auth/logout", response_model=LogoutResponse)
    def logout(req: LogoutRequest) -> LogoutResponse:
        """Invalidate the session family of the supplied refresh token."""
        revoked = service.logout(req.refresh_token)
        return LogoutResponse(status="ok", revoked_families=int(revoked))

    @router.post("/api/auth/logout-all", response_model=LogoutResponse)
    def logout_all(context: AuthContext = Depends(get_auth_context)) -> LogoutResponse:
        """Invalidate every session family of the current principal."""
        count = service.logout_all(context.principal_id)
        return LogoutResponse(status="ok", revoked_families=count)

    @router.get(
        "/api/auth/me",
        response_model=AuthMeResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def me(context: AuthContext = Depends(get_auth_context)) -> AuthMeResponse:
        """Return the principal behind the presented access token."""
        return AuthMeResponse(
            principal=principal_response(context.principal),
            role=context.role,
            family_id=context.family_id,
        )

    @router.post(
        "/api/auth/principals/{role}",
        response_model=PrincipalResponse,
        status_code=201,
        responses={403: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def provision(
        role: str,
        req: JoinRequest,
        _admin: AuthContext = Depends(require_roles("admin", "system_admin")),
    ) -> PrincipalResponse:
        """Create a principal of any role on behalf of an administrator."""
        principal = service.create_principal(
            role, req.email, req.password, req.profile, self_service=False
        )
        return principal_response(principal)

    @router.post(
        "/api/auth/principals/{role}/{principal_id}/deactivate",
        response_model=LogoutResponse,
        responses={403: {"model": ApiErrorResponse}},
    )
    def deactivate(
        role: str,
        principal_id: str,
        _admin: AuthContext = Depends(require_roles("admin", "system_admin")),
    ) -> LogoutResponse:
        """Deactivate a principal and revoke all of its sessions."""
        count = service.deactivate_principal(role, principal_id)
        return LogoutResponse(status="ok", revoked_families=count)

    @router.delete(
        "/api/auth/principals/{role}/{principal_id}",
        response_model=LogoutResponse,
        responses={403: {"model": ApiErrorResponse}},
    )
    def delete(
        role: str,
        principal_id: str,
        _admin: AuthContext = Depends(require_roles("admin", "system_admin")),
    ) -> LogoutResponse:
        """Soft-delete a principal and revoke all of its sessions."""
        count = service.delete_principal(role, principal_id)
        return LogoutResponse(status="ok", revoked_families=count)

    return router
