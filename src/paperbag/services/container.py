"""Service wiring.

All stateful collaborators (rate limiters, audit log, scheduler) are created
here once per process and handed to the services that use them, so tests can
build an isolated set per test.
"""

from dataclasses import dataclass
from typing import Callable

from paperbag.core.clock import now_ms
from paperbag.core.config import Settings
from paperbag.security.audit import SecurityAuditLogger
from paperbag.security.middleware import SecurityMiddleware
from paperbag.security.rate_limiter import RateLimiters
from paperbag.services.identity import IdentityProvider
from paperbag.services.images import ImageService
from paperbag.services.security_status import SecurityStatusService
from paperbag.services.storage import BlobStorage, SignedUrlStorage
from paperbag.services.transformation import TransformationService
from paperbag.uow import UowFactory
from paperbag.workers.cartoon_generation_worker import (
    CARTOON_GENERATION_JOB,
    make_cartoon_generation_job,
)
from paperbag.workers.scheduler import AsyncioJobScheduler


@dataclass
class Services:
    """Everything request handlers need, owned by the application lifespan."""

    settings: Settings
    audit_logger: SecurityAuditLogger
    rate_limiters: RateLimiters
    security: SecurityMiddleware
    identity_provider: IdentityProvider
    storage: BlobStorage
    scheduler: AsyncioJobScheduler
    images: ImageService
    transformations: TransformationService
    security_status: SecurityStatusService


def build_services(
    settings: Settings,
    uow_factory: UowFactory,
    scheduler: AsyncioJobScheduler | None = None,
    storage: BlobStorage | None = None,
    clock: Callable[[], int] = now_ms,
) -> Services:
    """Construct the service graph for one process (or one test)."""
    audit_logger = SecurityAuditLogger(max_entries=settings.audit_log_max_entries)
    rate_limiters = RateLimiters.from_settings(settings, clock=clock)
    security = SecurityMiddleware(audit_logger)

    if scheduler is None:
        scheduler = AsyncioJobScheduler()
        scheduler.register(
            CARTOON_GENERATION_JOB, make_cartoon_generation_job(uow_factory, settings)
        )

    if storage is None:
        storage = SignedUrlStorage(
            upload_base_url=settings.storage_upload_base_url,
            public_base_url=settings.storage_public_base_url,
            signing_key=settings.storage_signing_key,
            ttl_seconds=settings.storage_upload_url_ttl_seconds,
        )

    return Services(
        settings=settings,
        audit_logger=audit_logger,
        rate_limiters=rate_limiters,
        security=security,
        identity_provider=IdentityProvider(
            secret=settings.auth_jwt_secret,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
        ),
        storage=storage,
        scheduler=scheduler,
        images=ImageService(
            uow_factory,
            storage,
            security,
            rate_limiters,
            max_upload_bytes=settings.max_upload_bytes,
        ),
        transformations=TransformationService(
            uow_factory, scheduler, security, rate_limiters.processing
        ),
        security_status=SecurityStatusService(security, rate_limiters),
    )
