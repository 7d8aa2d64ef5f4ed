"""Transformation request handler.

The single place where an uploaded image is turned into a generation job.

Validation order (first failure wins):
1. caller is authenticated
2. style is supported (checked before any record lookup)
3. an image record exists for the origin-storage reference
4. the caller owns that record

Status gate:
- processing: report processing, schedule nothing
- completed with a cartoon URL: report completed, write nothing
- otherwise: conditionally move to processing, then schedule the job;
  if scheduling fails the record goes back to pending and SchedulingFailed
  is raised so the caller can retry
- conditional move lost to a concurrent writer: report the status that
  writer left behind; success is false unless it is processing or completed
  (e.g. back at pending because the winner could not schedule its job),
  meaning no job was started for this request and it may be repeated

The origin-storage reference is the idempotency key. The move to processing
is a compare-and-swap on the observed status, so duplicate requests racing on
the same image schedule at most one job.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog

from paperbag.models.image import ImageStatus
from paperbag.security.audit import SecurityAuditLogger
from paperbag.security.middleware import RequestContext, SecurityMiddleware, SecurityPolicy
from paperbag.security.rate_limiter import RateLimiter
from paperbag.services.exceptions import (
    AuthenticationRequired,
    InvalidStyle,
    RecordNotFound,
    SchedulingFailed,
    Unauthorized,
)
from paperbag.services.image_generation.styles import validate_style
from paperbag.uow import UowFactory
from paperbag.workers.cartoon_generation_worker import CARTOON_GENERATION_JOB
from paperbag.workers.scheduler import AsyncioJobScheduler

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransformationResult:
    """Outcome reported to the caller."""

    success: bool
    status: ImageStatus

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "status": self.status.value}


class TransformationService:
    """Accept cartoon transformation requests for uploaded images."""

    def __init__(
        self,
        uow_factory: UowFactory,
        scheduler: AsyncioJobScheduler,
        security: SecurityMiddleware,
        processing_limiter: RateLimiter,
    ):
        self.uow_factory = uow_factory
        self.scheduler = scheduler
        self.security = security
        self.policy = SecurityPolicy(
            operation="request_transformation",
            rate_limiter=processing_limiter,
            audit_event="image_processing_request",
        )

    @property
    def audit_logger(self) -> SecurityAuditLogger:
        return self.security.audit_logger

    async def request_transformation(
        self, ctx: RequestContext, storage_id: str, style: Any
    ) -> TransformationResult:
        """Request a cartoon transformation of an uploaded image.

        Args:
            ctx: Caller identity, user agent and IP address
            storage_id: Origin-storage reference of the uploaded photo
            style: Requested cartoon style

        Returns:
            TransformationResult with the image's status after the request.
            `success` is False only when a concurrent request claimed the image
            and it has since moved on to pending, failed or error; nothing was
            scheduled and the request may be sent again.

        Raises:
            AuthenticationRequired: Caller is not signed in
            RateLimited: Processing budget exhausted (before any state change)
            InvalidStyle: Style is not supported
            RecordNotFound: No image for this storage reference
            Unauthorized: Image belongs to another user
            SchedulingFailed: Job could not be enqueued; image is pending again
        """
        return await self.security.run(
            self.policy, ctx, self._request_transformation, storage_id, style
        )

    async def _request_transformation(
        self, ctx: RequestContext, storage_id: str, style: Any
    ) -> TransformationResult:
        if ctx.identity is None:
            raise AuthenticationRequired()
        user_id = ctx.identity.subject

        try:
            cartoon_style = validate_style(style)
        except InvalidStyle:
            self.audit_logger.log(
                "warning",
                "invalid_style_parameter",
                {
                    "style": str(style)[:100],
                    "user_agent": ctx.user_agent,
                    "ip_address": ctx.ip_address,
                },
                user_id=user_id,
                ip=ctx.ip_address,
            )
            raise

        async with await self.uow_factory() as uow:
            image = await uow.images.get_by_storage_id(storage_id)
            if image is None:
                raise RecordNotFound()

            if image.user_id != user_id:
                self.audit_logger.log(
                    "warning",
                    "unauthorized_image_access",
                    {
                        "image_id": str(image.id),
                        "image_owner": image.user_id,
                        "user_agent": ctx.user_agent,
                        "ip_address": ctx.ip_address,
                    },
                    user_id=user_id,
                    ip=ctx.ip_address,
                )
                raise Unauthorized("Unauthorized access to image")

            if image.status == ImageStatus.PROCESSING:
                return TransformationResult(success=True, status=ImageStatus.PROCESSING)

            if image.is_transformed:
                return TransformationResult(success=True, status=ImageStatus.COMPLETED)

            claimed = await uow.images.claim_for_processing(image, cartoon_style.value)
            if not claimed:
                logger.info(
                    "image.transform.claim_lost",
                    image_id=str(image.id),
                    current_status=image.status.value,
                )
                return TransformationResult(
                    success=image.status in (ImageStatus.PROCESSING, ImageStatus.COMPLETED),
                    status=image.status,
                )

            image_id = image.id
            payload = {
                "image_id": str(image.id),
                "user_id": image.user_id,
                "style": cartoon_style.value,
                "image_url": image.original_image_url,
            }

        self.audit_logger.log(
            "info",
            "image_processing_started",
            {
                "image_id": str(image_id),
                "style": cartoon_style.value,
                "user_agent": ctx.user_agent,
                "ip_address": ctx.ip_address,
            },
            user_id=user_id,
            ip=ctx.ip_address,
        )

        try:
            await self.scheduler.run_after(0, CARTOON_GENERATION_JOB, payload)
        except Exception as e:
            self.audit_logger.log(
                "error",
                "image_processing_scheduling_failed",
                {"image_id": str(image_id), "error": str(e)},
                user_id=user_id,
                ip=ctx.ip_address,
            )
            logger.error(
                "image.transform.scheduling_failed",
                image_id=str(image_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._release(image_id)
            raise SchedulingFailed() from e

        logger.info("image.transform.scheduled", image_id=str(image_id), style=cartoon_style.value)
        return TransformationResult(success=True, status=ImageStatus.PROCESSING)

    async def _release(self, image_id: UUID) -> None:
        """Put a claimed image back to pending after its job could not be scheduled.

        A failed revert leaves the image in processing until orphan recovery
        resets it; the caller still gets SchedulingFailed.
        """
        try:
            async with await self.uow_factory() as uow:
                image = await uow.images.get_by_id(image_id)
                if image is not None:
                    await uow.images.release_to_pending(image)
        except Exception as e:
            logger.error(
                "image.transform.release_failed",
                image_id=str(image_id),
                error=str(e),
                error_type=type(e).__name__,
            )
