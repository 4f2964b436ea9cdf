from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roleauth.api.contracts import HealthResponse
from roleauth.api.http_setup import register_exception_handlers, register_http_middleware
from roleauth.auth.ledger import RevocationLedger
from roleauth.auth.middleware import create_auth_middleware
from roleauth.auth.rate_limiter import LoginRateLimiter
from roleauth.auth.repository import PrincipalRepository
from roleauth.auth.roles import RoleRegistry
from roleauth.auth.router import create_auth_router
from roleauth.auth.service import AuthService
from roleauth.core.config import AppConfig
from roleauth.core.logging import setup_logging
from roleauth.core.mongo_migrations import apply_mongo_migrations

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def _resolve(path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else (APP_ROOT / candidate).resolve()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Assemble the session auth API from configuration."""
    if config is None:
        load_dotenv()
        config = AppConfig.from_env()
    setup_logging(config.logging.level)
    if config.auth.uses_dev_secret:
        LOGGER.warning("auth_using_dev_secret_key")

    app = FastAPI(title="Role Auth API", version="1.0.0")
    apply_mongo_migrations(config.storage)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    runtime_dir = _resolve(config.storage.runtime_dir)
    state_db_path = _resolve(config.storage.sqlite_path)
    principal_repo = PrincipalRepository(
        runtime_dir,
        mongo_uri=config.storage.mongo_uri,
        mongo_db=config.storage.mongo_db,
    )
    ledger = RevocationLedger(
        database_path=state_db_path,
        mongo_uri=config.storage.mongo_uri,
        mongo_db=config.storage.mongo_db,
    )
    roles = RoleRegistry.from_config(config.auth, principal_repo)
    auth_service = AuthService(roles, ledger, config.auth)
    auth_service.bootstrap_admin_user()
    login_rate_limiter = LoginRateLimiter(
        database_path=state_db_path,
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )
    app.include_router(create_auth_router(auth_service, login_rate_limiter))
    # Registered first so the common middleware wraps it and sees its rejections.
    app.middleware("http")(create_auth_middleware(auth_service))
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.on_event("shutdown")
    async def close_auth_state() -> None:
        login_rate_limiter.close()
        ledger.close()

    app.state.auth_service = auth_service
    LOGGER.info(
        "auth_app_ready",
        extra={"reason": f"roles={','.join(roles.names)} principals={principal_repo.backend}"},
    )
    return app


app = create_app()
