"""FastAPI dependencies for request context and service access.

This module provides reusable FastAPI dependencies for:
- Service graph access from app.state
- Caller identity resolution from the Authorization header
- Request metadata (user agent, client IP) for audit logging
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from paperbag.security.middleware import RequestContext
from paperbag.services.container import Services


def get_services(request: Request) -> Services:
    """Get the service graph built during application startup."""
    return request.app.state.services


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of a `Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def client_ip(request: Request) -> str | None:
    """Client address, preferring the first X-Forwarded-For hop set by the proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def get_request_context(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    services: Services = Depends(get_services),
) -> RequestContext:
    """Resolve who is calling.

    An invalid or missing token yields a context without identity; operations
    that require authentication reject it in the security middleware.
    """
    identity = services.identity_provider.get_identity(extract_bearer_token(authorization))
    return RequestContext(
        identity=identity,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )
