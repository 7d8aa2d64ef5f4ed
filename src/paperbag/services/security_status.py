"""Read-only security views: audit log queries and rate-limit status."""

from typing import Any

from paperbag.core.clock import ms_to_datetime
from paperbag.security.audit import AuditLogEntry
from paperbag.security.middleware import RequestContext, SecurityMiddleware, SecurityPolicy
from paperbag.security.rate_limiter import RateLimiters
from paperbag.services.exceptions import ValidationFailed

AUDIT_LEVELS = ("info", "warning", "error")


class SecurityStatusService:
    """Expose the audit log and the caller's own rate-limit budget."""

    def __init__(self, security: SecurityMiddleware, rate_limiters: RateLimiters):
        self.security = security
        self.rate_limiters = rate_limiters
        self.logs_policy = SecurityPolicy(operation="get_security_logs")
        self.rate_limit_policy = SecurityPolicy(operation="get_rate_limit_status")

    async def get_security_logs(
        self,
        ctx: RequestContext,
        level: str | None = None,
        user_id: str | None = None,
        since_ms: int | None = None,
    ) -> list[AuditLogEntry]:
        """Audit entries filtered by level, user and start time.

        TODO: restrict to admin identities once the auth gateway issues a role claim.
        """
        return await self.security.run(
            self.logs_policy,
            ctx,
            self._get_security_logs,
            level=level,
            user_id=user_id,
            since_ms=since_ms,
        )

    async def _get_security_logs(
        self,
        ctx: RequestContext,
        level: str | None = None,
        user_id: str | None = None,
        since_ms: int | None = None,
    ) -> list[AuditLogEntry]:
        if level is not None and level not in AUDIT_LEVELS:
            raise ValidationFailed(f"Unknown log level: {level}")

        audit_logger = self.security.audit_logger
        audit_logger.log(
            "info",
            "security_logs_accessed",
            {"filters": {"level": level, "user_id": user_id, "since": since_ms}},
            user_id=ctx.user_id,
            ip=ctx.ip_address,
        )
        since = ms_to_datetime(since_ms) if since_ms is not None else None
        return audit_logger.get_logs(level=level, user_id=user_id, since=since)

    async def get_rate_limit_status(self, ctx: RequestContext) -> dict[str, dict[str, Any]]:
        """Remaining requests and reset time for upload, processing and general limits."""
        return await self.security.run(self.rate_limit_policy, ctx, self._get_rate_limit_status)

    async def _get_rate_limit_status(self, ctx: RequestContext) -> dict[str, dict[str, Any]]:
        return self.rate_limiters.status_for(ctx.rate_limit_key)
