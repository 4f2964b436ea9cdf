"""HTTP middleware and dependencies that enforce auth on protected API routes."""

from __future__ import annotations

import re
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from roleauth.api.contracts import ApiErrorResponse
from roleauth.api.errors import ApiErrorCode, to_error_payload
from roleauth.auth.errors import AuthError, StoreUnavailable, Unauthenticated
from roleauth.auth.resolver import AuthContext
from roleauth.auth.service import AuthService

PUBLIC_PATHS = frozenset({"/api/health", "/api/auth/logout"})
_PUBLIC_AUTH_ROUTE = re.compile(r"^/api/auth/[a-z_]+/(join|login|refresh)$")


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or bool(_PUBLIC_AUTH_ROUTE.match(path))


def create_auth_middleware(service: AuthService) -> Callable:
    """Create middleware function that validates access tokens when enabled."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate auth for protected API paths and attach context to request state."""
        if not service.enabled:
            return await call_next(request)

        path = request.url.path
        if request.method == "OPTIONS" or not path.startswith("/api/") or is_public_path(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization", ""))
        if not token:
            return JSONResponse(
                status_code=401,
                content=ApiErrorResponse(
                    error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                    message="Missing bearer token",
                ).model_dump(),
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            context = service.authenticate(token)
        except (AuthError, StoreUnavailable) as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
                headers=exc.headers,
            )

        request.state.auth = context
        return await call_next(request)

    return auth_middleware


def get_auth_context(request: Request) -> AuthContext:
    """FastAPI dependency returning the context attached by the middleware."""
    context = getattr(request.state, "auth", None)
    if not isinstance(context, AuthContext):
        raise Unauthenticated()
    return context


def require_roles(*roles: str) -> Callable[[Request], AuthContext]:
    """Build a dependency that admits only the given roles."""

    def dependency(request: Request) -> AuthContext:
        context = get_auth_context(request)
        context.require_role(*roles)
        return context

    return dependency
