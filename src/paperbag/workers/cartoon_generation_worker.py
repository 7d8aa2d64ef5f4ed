"""Cartoon generation job.

Scheduled by the transformation request handler once an image has been moved
to 'processing'. Calls Replicate with the style prompt and the original photo,
then writes the outcome back to the image record:

- success: processing → completed (derived reference and URL set)
- TransientError: processing → error (the user may request again)
- ContentPolicyError / PermanentError: processing → failed

The Replicate call happens outside any database transaction; the record is
re-read afterwards and only updated if it is still processing.
"""

import time
from typing import Any, Awaitable, Callable
from uuid import UUID

import structlog

from paperbag.core.config import Settings
from paperbag.models.image import ImageStatus
from paperbag.services.image_generation.replicate_client import (
    ContentPolicyError,
    PermanentError,
    TransientError,
    generate_cartoon,
)
from paperbag.services.image_generation.styles import CartoonStyle, prompt_for
from paperbag.uow import UowFactory

logger = structlog.get_logger(__name__)

CARTOON_GENERATION_JOB = "cartoon_generation"

GenerateFn = Callable[..., Awaitable[str]]


async def process_cartoon_generation(
    payload: dict[str, Any],
    uow_factory: UowFactory,
    settings: Settings,
    generate: GenerateFn = generate_cartoon,
) -> None:
    """Generate the cartoon for one image and record the result.

    Args:
        payload: {"image_id": str, "style": str, "image_url": str | None}
        uow_factory: Factory for database units of work
        settings: Application settings (Replicate token and model)
        generate: Generation call, replaceable in tests

    Raises:
        Exception: Unexpected errors after the record has been marked 'error'
    """
    image_id = UUID(str(payload["image_id"]))
    style = CartoonStyle(payload["style"])
    start_time = time.time()

    async with await uow_factory() as uow:
        image = await uow.images.get_by_id(image_id)
        if image is None:
            logger.warning("image.generation.record_missing", image_id=str(image_id))
            return
        if image.status != ImageStatus.PROCESSING:
            logger.info(
                "image.generation.skipped", image_id=str(image_id), status=image.status.value
            )
            return
        image_url = payload.get("image_url") or image.original_image_url

    logger.info("image.generation.started", image_id=str(image_id), style=style.value)

    cartoon_url: str | None = None
    failure: tuple[ImageStatus, str] | None = None
    unexpected: Exception | None = None
    try:
        cartoon_url = await generate(
            image_url=image_url,
            prompt=prompt_for(style),
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
        )
    except TransientError as e:
        failure = (ImageStatus.ERROR, str(e))
    except (ContentPolicyError, PermanentError) as e:
        failure = (ImageStatus.FAILED, str(e))
    except Exception as e:
        failure = (ImageStatus.ERROR, f"Unexpected error: {e}")
        unexpected = e

    async with await uow_factory() as uow:
        image = await uow.images.get_by_id(image_id)
        if image is None or image.status != ImageStatus.PROCESSING:
            logger.warning("image.generation.result_discarded", image_id=str(image_id))
            return

        if failure is None and cartoon_url:
            # Replicate's CDN holds the derived blob, so its URL is the derived reference
            image.mark_completed(cartoon_storage_id=cartoon_url, cartoon_image_url=cartoon_url)
            logger.info(
                "image.generation.succeeded",
                image_id=str(image_id),
                duration_seconds=time.time() - start_time,
            )
        else:
            status, message = failure or (ImageStatus.FAILED, "Generation returned no image")
            image.mark_failed(message, status=status)
            logger.error(
                "image.generation.failed",
                image_id=str(image_id),
                status=status.value,
                error_message=message,
            )

    if unexpected is not None:
        raise unexpected


def make_cartoon_generation_job(
    uow_factory: UowFactory, settings: Settings
) -> Callable[[dict[str, Any]], Awaitable[None]]:
    """Bind the generation job to its dependencies for the scheduler."""

    async def _job(payload: dict[str, Any]) -> None:
        await process_cartoon_generation(payload, uow_factory, settings)

    return _job


async def recover_orphaned_images(uow_factory: UowFactory) -> int:
    """Reset images stuck in 'processing' on startup.

    Jobs live in process memory, so a restart leaves their images in
    'processing' forever unless they are released back to 'pending'.

    Returns:
        Number of images reset
    """
    async with await uow_factory() as uow:
        recovered_count = await uow.images.reset_processing_to_pending()

    if recovered_count > 0:
        logger.info("worker.recovery", orphaned_images_reset=recovered_count)
    return recovered_count
