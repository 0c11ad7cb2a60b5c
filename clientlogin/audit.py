"""
Audit trail for logins.

One JSON document per login, logout, failed attempt, CSRF mismatch and
session sweep, written to the "audit" logger. Passwords, tokens and state
values never appear in a record.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .core.config import settings
from .events import ClientLoginEvent, ClientLoginEvents


audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)

if settings.AUDIT_LOG_FILE:
    _file_handler = logging.FileHandler(settings.AUDIT_LOG_FILE)
    _file_handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(_file_handler)


class AuditEventType(Enum):
    AUTH_LOGIN = "auth.login"
    AUTH_LOGOUT = "auth.logout"
    AUTH_FAILED = "auth.failed"
    AUTH_SESSION_REVOKED = "auth.session_revoked"
    SECURITY_CSRF_MISMATCH = "security.csrf_mismatch"


@dataclass
class AuditEvent:
    timestamp: str
    event_type: str
    actor: Optional[str]  # profile ID, "anonymous" or "system"
    resource: Optional[str]  # provider name
    action: str
    outcome: str
    details: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


def audit_log(
    event_type: AuditEventType,
    details: Dict[str, Any],
    *,
    actor: Optional[str] = None,
    provider: Optional[str] = None,
    outcome: str = "success",
) -> AuditEvent:
    """
    Write one audit record.

    Args:
        event_type: What happened
        details: Event specific fields, never secrets
        actor: Profile ID, "anonymous" or "system"
        provider: Provider the event concerns
        outcome: "success" or "failure"

    Returns:
        The record as written
    """
    record = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        event_type=event_type.value,
        actor=actor,
        resource=provider,
        action=event_type.value.rsplit(".", 1)[-1],
        outcome=outcome,
        details=details,
    )
    audit_logger.info(record.to_json())
    return record


def audit_auth_failure(provider: str, reason: str, identifier: Optional[str] = None) -> AuditEvent:
    details = {"reason": reason}
    if identifier:
        details["identifier"] = identifier
    return audit_log(AuditEventType.AUTH_FAILED, details, actor="anonymous", provider=provider, outcome="failure")


def audit_csrf_mismatch(provider: Optional[str]) -> AuditEvent:
    return audit_log(AuditEventType.SECURITY_CSRF_MISMATCH, {}, actor="anonymous", provider=provider, outcome="failure")


def audit_sessions_pruned(count: int, retention_days: int) -> AuditEvent:
    return audit_log(
        AuditEventType.AUTH_SESSION_REVOKED,
        {"count": count, "retention_days": retention_days},
        actor="system",
    )


def audit_listener(event: ClientLoginEvent) -> None:
    """Event notifier listener recording logins and logouts."""
    if event.type is ClientLoginEvents.LOGIN:
        event_type = AuditEventType.AUTH_LOGIN
    else:
        event_type = AuditEventType.AUTH_LOGOUT
    audit_log(
        event_type,
        {"identifier": event.profile.identifier},
        actor=event.profile.id,
        provider=event.profile.provider,
    )
