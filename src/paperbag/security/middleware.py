"""Security middleware chain for service operations.

Every public operation runs through the same fixed sequence of stages:

1. authentication - reject callers without an identity when required
2. rate limiting - key is the caller's subject, or "anonymous"
3. audit - record that the operation was requested
4. execution - failures are audit-logged with a type summary of the
   arguments (never their values) and re-raised unchanged

Operations are named explicitly through `SecurityPolicy.operation`.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from paperbag.security.audit import SecurityAuditLogger
from paperbag.security.rate_limiter import ANONYMOUS, RateLimiter
from paperbag.services.exceptions import AuthenticationRequired, RateLimited
from paperbag.services.identity import Identity

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RequestContext:
    """Who is calling and from where."""

    identity: Identity | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    @property
    def user_id(self) -> str | None:
        return self.identity.subject if self.identity else None

    @property
    def rate_limit_key(self) -> str:
        return self.user_id or ANONYMOUS


@dataclass(frozen=True)
class SecurityPolicy:
    """Which stages apply to an operation."""

    operation: str
    rate_limiter: RateLimiter | None = None
    require_auth: bool = True
    audit_event: str | None = None


def summarize_arguments(args: tuple, kwargs: dict[str, Any]) -> dict[str, Any]:
    """Describe call arguments by type only, so payloads never reach the logs."""
    return {
        "args": [type(arg).__name__ for arg in args],
        "kwargs": {name: type(value).__name__ for name, value in kwargs.items()},
    }


class SecurityMiddleware:
    """Runs handlers behind the authentication, rate limit and audit stages."""

    def __init__(self, audit_logger: SecurityAuditLogger):
        self.audit_logger = audit_logger

    async def run(
        self,
        policy: SecurityPolicy,
        ctx: RequestContext,
        handler: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Apply the policy's stages, then await `handler(ctx, *args, **kwargs)`.

        Raises:
            AuthenticationRequired: No identity and the policy requires one
            RateLimited: The caller exhausted the policy's limiter
            Exception: Whatever the handler raised, unchanged
        """
        if policy.require_auth and ctx.identity is None:
            self.audit_logger.log(
                "warning",
                "unauthorized_access_attempt",
                {"function": policy.operation, **summarize_arguments(args, kwargs)},
                ip=ctx.ip_address,
            )
            raise AuthenticationRequired()

        if policy.rate_limiter is not None:
            identifier = ctx.rate_limit_key
            if not policy.rate_limiter.is_allowed(identifier):
                remaining = policy.rate_limiter.get_remaining_requests(identifier)
                reset_time = policy.rate_limiter.get_reset_time(identifier)
                self.audit_logger.log(
                    "warning",
                    "rate_limit_exceeded",
                    {
                        "function": policy.operation,
                        "identifier": identifier,
                        "remaining_requests": remaining,
                        "reset_time": reset_time,
                    },
                    user_id=ctx.user_id,
                    ip=ctx.ip_address,
                )
                raise RateLimited(remaining=remaining, reset_time=reset_time)

        if policy.audit_event:
            self.audit_logger.log(
                "info",
                policy.audit_event,
                {"function": policy.operation},
                user_id=ctx.user_id,
                ip=ctx.ip_address,
            )

        try:
            return await handler(ctx, *args, **kwargs)
        except Exception as e:
            self.audit_logger.log(
                "error",
                "function_execution_error",
                {
                    "function": policy.operation,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    **summarize_arguments(args, kwargs),
                },
                user_id=ctx.user_id,
                ip=ctx.ip_address,
            )
            logger.debug(
                "security.handler_failed",
                operation=policy.operation,
                error_type=type(e).__name__,
            )
            raise
