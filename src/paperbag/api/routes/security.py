"""Security monitoring endpoints.

- GET /api/security/logs - Audit log entries filtered by level, user and start time
- GET /api/security/rate-limits - Caller's remaining quota per limiter
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from paperbag.api.dependencies import get_request_context, get_services
from paperbag.security.middleware import RequestContext
from paperbag.services.container import Services

router = APIRouter(prefix="/api/security", tags=["security"])


class AuditLogEntryDTO(BaseModel):
    timestamp: datetime
    level: str
    event: str
    details: dict[str, Any]
    user_id: str | None = None
    ip: str | None = None


class RateLimitDTO(BaseModel):
    remaining: int
    reset_time: int


class RateLimitStatusResponse(BaseModel):
    upload: RateLimitDTO
    processing: RateLimitDTO
    general: RateLimitDTO


@router.get("/logs", response_model=list[AuditLogEntryDTO])
async def get_security_logs(
    level: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    since: int | None = Query(default=None, description="Epoch milliseconds"),
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> list[AuditLogEntryDTO]:
    entries = await services.security_status.get_security_logs(
        ctx, level=level, user_id=user_id, since_ms=since
    )
    return [AuditLogEntryDTO(**entry.model_dump()) for entry in entries]


@router.get("/rate-limits", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> RateLimitStatusResponse:
    status = await services.security_status.get_rate_limit_status(ctx)
    return RateLimitStatusResponse(**status)
