"""Transformation request handler tests.

Tests focus on the request contract:
- Validation order (auth, style, lookup, ownership)
- Status gate and idempotency on the storage reference
- Reverting to pending when the job cannot be scheduled
- Processing rate limit applied before any state change
"""

import asyncio

import pytest

from paperbag.models.image import ImageStatus
from paperbag.repositories.image import ImageRepository
from paperbag.services.exceptions import (
    AuthenticationRequired,
    InvalidStyle,
    RateLimited,
    RecordNotFound,
    SchedulingFailed,
    Unauthorized,
)
from paperbag.services.transformation import TransformationService
from paperbag.workers.scheduler import JobSchedulingError


class FailingScheduler:
    def __init__(self) -> None:
        self.calls = 0

    async def run_after(self, delay_ms, job_name, payload):
        self.calls += 1
        raise JobSchedulingError("queue unavailable")


async def load(uow_factory, image_id):
    async with await uow_factory() as uow:
        return await uow.images.get_by_id(image_id)


def audit_events(services):
    return [entry.event for entry in services.audit_logger.get_logs()]


@pytest.mark.asyncio
async def test_pending_image_moves_to_processing_and_job_is_scheduled(
    services, scheduler, recorded_jobs, uow_factory, make_image, ctx
):
    image = await make_image()

    result = await services.transformations.request_transformation(ctx, "storage-1", "anime")
    await scheduler.wait_idle()

    assert result.to_dict() == {"success": True, "status": "processing"}
    stored = await load(uow_factory, image.id)
    assert stored.status == ImageStatus.PROCESSING
    assert stored.style == "anime"
    assert recorded_jobs.payloads == [
        {
            "image_id": str(image.id),
            "user_id": "user-1",
            "style": "anime",
            "image_url": "https://blobs.test/files/storage-1",
        }
    ]
    assert "image_processing_request" in audit_events(services)
    assert "image_processing_started" in audit_events(services)


@pytest.mark.asyncio
async def test_scheduling_failure_reverts_to_pending(services, uow_factory, make_image, ctx):
    image = await make_image()
    failing = FailingScheduler()
    transformations = TransformationService(
        uow_factory, failing, services.security, services.rate_limiters.processing
    )

    with pytest.raises(SchedulingFailed) as exc_info:
        await transformations.request_transformation(ctx, "storage-1", "anime")

    assert exc_info.value.retryable
    assert isinstance(exc_info.value.__cause__, JobSchedulingError)
    assert failing.calls == 1
    assert (await load(uow_factory, image.id)).status == ImageStatus.PENDING
    assert "image_processing_scheduling_failed" in audit_events(services)


@pytest.mark.asyncio
async def test_scheduling_failure_is_reported_when_revert_fails(
    services, uow_factory, make_image, ctx
):
    image = await make_image()
    opened = 0

    async def uow_factory_losing_database():
        nonlocal opened
        opened += 1
        if opened > 1:
            raise RuntimeError("database unavailable")
        return await uow_factory()

    transformations = TransformationService(
        uow_factory_losing_database,
        FailingScheduler(),
        services.security,
        services.rate_limiters.processing,
    )

    with pytest.raises(SchedulingFailed):
        await transformations.request_transformation(ctx, "storage-1", "anime")

    assert "image_processing_scheduling_failed" in audit_events(services)
    # Left for orphan recovery
    assert (await load(uow_factory, image.id)).status == ImageStatus.PROCESSING


@pytest.mark.asyncio
async def test_concurrent_duplicate_requests_schedule_one_job(
    services, scheduler, recorded_jobs, make_image, ctx
):
    await make_image()

    results = await asyncio.gather(
        services.transformations.request_transformation(ctx, "storage-1", "anime"),
        services.transformations.request_transformation(ctx, "storage-1", "anime"),
    )
    await scheduler.wait_idle()

    assert [r.to_dict() for r in results] == [{"success": True, "status": "processing"}] * 2
    assert len(recorded_jobs.payloads) == 1


@pytest.mark.asyncio
async def test_lost_claim_reports_current_status_and_schedules_nothing(
    services, scheduler, recorded_jobs, uow_factory, make_image, ctx, monkeypatch
):
    image = await make_image()

    async def claimed_by_another_request(self, image, style):
        return False

    monkeypatch.setattr(ImageRepository, "claim_for_processing", claimed_by_another_request)

    result = await services.transformations.request_transformation(ctx, "storage-1", "anime")
    await scheduler.wait_idle()

    assert result.to_dict() == {"success": False, "status": "pending"}
    assert recorded_jobs.payloads == []
    assert (await load(uow_factory, image.id)).status == ImageStatus.PENDING


@pytest.mark.asyncio
async def test_duplicate_request_schedules_one_job(
    services, scheduler, recorded_jobs, make_image, ctx
):
    await make_image()

    first = await services.transformations.request_transformation(ctx, "storage-1", "anime")
    second = await services.transformations.request_transformation(ctx, "storage-1", "disney")
    await scheduler.wait_idle()

    assert first.status == ImageStatus.PROCESSING
    assert second.to_dict() == {"success": True, "status": "processing"}
    assert len(recorded_jobs.payloads) == 1
    assert recorded_jobs.payloads[0]["style"] == "anime"


@pytest.mark.asyncio
async def test_transformed_image_is_not_touched(
    services, scheduler, recorded_jobs, uow_factory, make_image, ctx
):
    image = await make_image(
        status=ImageStatus.COMPLETED,
        cartoon_storage_id="https://cdn.test/done.png",
        cartoon_image_url="https://cdn.test/done.png",
        updated_at=1_234,
    )

    result = await services.transformations.request_transformation(ctx, "storage-1", "anime")
    await scheduler.wait_idle()

    assert result.to_dict() == {"success": True, "status": "completed"}
    stored = await load(uow_factory, image.id)
    assert stored.status == ImageStatus.COMPLETED
    assert stored.updated_at == 1_234
    assert recorded_jobs.payloads == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ImageStatus.FAILED, ImageStatus.ERROR, ImageStatus.COMPLETED])
async def test_retry_after_failure_or_missing_derived_image(
    services, uow_factory, make_image, ctx, status
):
    image = await make_image(status=status, error_message="previous failure")

    result = await services.transformations.request_transformation(ctx, "storage-1", "disney")

    assert result.status == ImageStatus.PROCESSING
    stored = await load(uow_factory, image.id)
    assert stored.status == ImageStatus.PROCESSING
    assert stored.error_message is None


@pytest.mark.asyncio
async def test_other_users_image_is_rejected(
    services, uow_factory, make_image, other_ctx, recorded_jobs
):
    image = await make_image()

    with pytest.raises(Unauthorized, match="Unauthorized access to image"):
        await services.transformations.request_transformation(other_ctx, "storage-1", "anime")

    assert (await load(uow_factory, image.id)).status == ImageStatus.PENDING
    assert recorded_jobs.payloads == []
    [entry] = services.audit_logger.get_logs(level="warning")
    assert entry.event == "unauthorized_image_access"
    assert entry.user_id == "user-2"
    assert entry.details["image_owner"] == "user-1"


@pytest.mark.asyncio
@pytest.mark.parametrize("style", ["pixar", "", None, 42, "ANIME"])
async def test_invalid_style_is_rejected_before_lookup(services, ctx, style):
    """No record exists for the storage reference, yet the style error wins."""
    with pytest.raises(InvalidStyle):
        await services.transformations.request_transformation(ctx, "does-not-exist", style)

    assert "invalid_style_parameter" in audit_events(services)


@pytest.mark.asyncio
async def test_unknown_storage_reference(services, ctx):
    with pytest.raises(RecordNotFound):
        await services.transformations.request_transformation(ctx, "does-not-exist", "anime")


@pytest.mark.asyncio
async def test_anonymous_caller_is_rejected(services, make_image, uow_factory, anonymous_ctx):
    image = await make_image()

    with pytest.raises(AuthenticationRequired):
        await services.transformations.request_transformation(anonymous_ctx, "storage-1", "anime")

    assert (await load(uow_factory, image.id)).status == ImageStatus.PENDING
    assert audit_events(services) == ["unauthorized_access_attempt"]


@pytest.mark.asyncio
async def test_fourth_request_in_window_is_rate_limited(
    services, uow_factory, make_image, ctx, clock
):
    for i in range(4):
        await make_image(original_storage_id=f"storage-{i}")

    for i in range(3):
        await services.transformations.request_transformation(ctx, f"storage-{i}", "anime")

    with pytest.raises(RateLimited) as exc_info:
        await services.transformations.request_transformation(ctx, "storage-3", "anime")

    assert exc_info.value.remaining == 0
    async with await uow_factory() as uow:
        untouched = await uow.images.get_by_storage_id("storage-3")
    assert untouched.status == ImageStatus.PENDING

    # The processing window is five minutes
    clock.advance(300_000)
    result = await services.transformations.request_transformation(ctx, "storage-3", "anime")
    assert result.status == ImageStatus.PROCESSING
