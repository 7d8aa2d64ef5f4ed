"""Security audit log.

Keeps the most recent security-relevant events in memory for inspection
through the security logs endpoint and mirrors every entry to structlog so
log aggregation receives them too. Recording an event never raises.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

AuditLevel = Literal["info", "warning", "error"]

logger = structlog.get_logger(__name__)


class AuditLogEntry(BaseModel):
    """One recorded security event."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: AuditLevel
    event: str
    details: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    ip: str | None = None


class SecurityAuditLogger:
    """Append-only, bounded security event log.

    Once `max_entries` is exceeded the oldest entries are evicted first.
    """

    def __init__(self, max_entries: int = 1000, sink: Any = None):
        self.max_entries = max_entries
        self._entries: deque[AuditLogEntry] = deque(maxlen=max_entries)
        self._sink = sink if sink is not None else logger

    def __len__(self) -> int:
        return len(self._entries)

    def log(
        self,
        level: AuditLevel,
        event: str,
        details: dict[str, Any] | None = None,
        user_id: str | None = None,
        ip: str | None = None,
    ) -> None:
        """Record a security event."""
        try:
            entry = AuditLogEntry(
                level=level,
                event=event,
                details=dict(details or {}),
                user_id=user_id,
                ip=ip,
            )
        except Exception:
            entry = AuditLogEntry(level="error", event=event, details={"invalid_entry": True})

        self._entries.append(entry)

        try:
            getattr(self._sink, level)(
                "security.audit",
                audit_event=event,
                user_id=user_id,
                ip=ip,
                **entry.details,
            )
        except Exception as e:
            logger.debug(
                "security.audit.sink_failed", audit_event=event, error_type=type(e).__name__
            )

    def get_logs(
        self,
        level: str | None = None,
        user_id: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditLogEntry]:
        """Return entries matching every given filter, oldest first."""
        entries: list[AuditLogEntry] = list(self._entries)
        if level:
            entries = [e for e in entries if e.level == level]
        if user_id:
            entries = [e for e in entries if e.user_id == user_id]
        if since is not None:
            entries = [e for e in entries if e.timestamp >= since]
        return entries
