"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEV_SECRET_KEY = "dev-insecure-secret-change-me"

DEFAULT_ROLES = (
    "admin",
    "member",
    "moderator",
    "employee",
    "manager",
    "nurse",
    "technician",
    "system_admin",
)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    return tuple(
        item.strip().lower()
        for item in os.getenv(name, default).split(",")
        if item.strip()
    )


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    enabled: bool
    secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    roles: tuple[str, ...] = DEFAULT_ROLES
    self_register_roles: tuple[str, ...] = ("member", "employee")
    password_min_length: int = 8
    admin_email: str = ""
    admin_password: str = ""

    @property
    def uses_dev_secret(self) -> bool:
        return self.secret_key == DEV_SECRET_KEY


@dataclass(frozen=True)
class StorageConfig:
    """Runtime storage locations for principals and the revocation ledger."""

    runtime_dir: str
    sqlite_path: str
    mongo_uri: str = ""
    mongo_db: str = "roleauth"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = os.getenv("AUTH_SECRET_KEY", "").strip() or DEV_SECRET_KEY
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "3600"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "roleauth").strip() or "roleauth"
        roles = _env_list("AUTH_ROLES", ",".join(DEFAULT_ROLES))
        self_register_roles = _env_list("AUTH_SELF_REGISTER_ROLES", "member,employee")
        password_min_length = int(os.getenv("AUTH_PASSWORD_MIN_LENGTH", "8"))
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "admin@local").strip().lower()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "").strip()

        runtime_dir = os.getenv("RUNTIME_DIR", "runtime").strip() or "runtime"
        sqlite_path = (
            os.getenv("AUTH_STATE_SQLITE_PATH", "runtime/auth_state.db").strip()
            or "runtime/auth_state.db"
        )
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "roleauth").strip() or "roleauth"

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))
        login_rate_limit_max_attempts = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
        )
        login_rate_limit_window_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "300")
        )
        login_rate_limit_lock_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "600")
        )

        return AppConfig(
            auth=AuthConfig(
                enabled=_env_flag("AUTH_ENABLED", "1"),
                secret_key=secret_key,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                roles=roles,
                self_register_roles=self_register_roles,
                password_min_length=password_min_length,
                admin_email=admin_email,
                admin_password=admin_password,
            ),
            storage=StorageConfig(
                runtime_dir=runtime_dir,
                sqlite_path=sqlite_path,
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                login_rate_limit_max_attempts=login_rate_limit_max_attempts,
                login_rate_limit_window_seconds=login_rate_limit_window_seconds,
                login_rate_limit_lock_seconds=login_rate_limit_lock_seconds,
            ),
        )
