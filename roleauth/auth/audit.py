"""Security event log for authentication activity."""

from __future__ import annotations

import logging
from typing import Any

AUDIT_LOGGER = logging.getLogger("roleauth.audit")

_WARNING_EVENTS = frozenset(
    {
        "login_failed",
        "refresh_replay_detected",
        "family_revoked",
        "principal_deactivated",
        "principal_deleted",
    }
)


def record_security_event(event: str, **fields: Any) -> None:
    """Emit a structured security event on the audit logger."""
    level = logging.WARNING if event in _WARNING_EVENTS else logging.INFO
    extra = {"event": event}
    extra.update({key: value for key, value in fields.items() if value not in (None, "")})
    AUDIT_LOGGER.log(level, "security_event: %s", event, extra=extra)
