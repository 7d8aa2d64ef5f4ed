"""Upload and gallery operations for image records."""

from dataclasses import dataclass
from uuid import UUID

import structlog

from paperbag.models.image import FILE_NAME_MAX_LENGTH, ImageRecord
from paperbag.security.middleware import RequestContext, SecurityMiddleware, SecurityPolicy
from paperbag.security.rate_limiter import RateLimiters
from paperbag.services.exceptions import RecordNotFound, Unauthorized, ValidationFailed
from paperbag.services.storage import BlobStorage
from paperbag.services.upload_validation import (
    MAX_FILE_SIZE,
    sanitize_input,
    validate_file_metadata,
)
from paperbag.uow import UowFactory

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class ImagePage:
    """One page of a user's gallery."""

    images: list[ImageRecord]
    has_more: bool
    next_cursor: str | None


def parse_cursor(cursor: str | None) -> int | None:
    """Decode a pagination cursor (created_at in epoch ms)."""
    if cursor is None or cursor == "":
        return None
    try:
        return int(cursor)
    except ValueError:
        raise ValidationFailed("Invalid cursor") from None


class ImageService:
    """Upload URLs, image registration, gallery listing and status lookups."""

    def __init__(
        self,
        uow_factory: UowFactory,
        storage: BlobStorage,
        security: SecurityMiddleware,
        rate_limiters: RateLimiters,
        max_upload_bytes: int = MAX_FILE_SIZE,
    ):
        self.uow_factory = uow_factory
        self.storage = storage
        self.security = security
        self.max_upload_bytes = max_upload_bytes

        self.upload_url_policy = SecurityPolicy(
            operation="generate_upload_url",
            rate_limiter=rate_limiters.upload,
            audit_event="upload_url_request",
        )
        self.save_policy = SecurityPolicy(
            operation="save_uploaded_image",
            rate_limiter=rate_limiters.upload,
            audit_event="image_save",
        )
        self.list_policy = SecurityPolicy(
            operation="list_images",
            rate_limiter=rate_limiters.general,
            audit_event="user_images_query",
        )
        self.get_policy = SecurityPolicy(
            operation="get_image",
            rate_limiter=rate_limiters.general,
        )

    async def generate_upload_url(self, ctx: RequestContext) -> str:
        """Signed URL the client uploads the raw photo to."""
        return await self.security.run(self.upload_url_policy, ctx, self._generate_upload_url)

    async def _generate_upload_url(self, ctx: RequestContext) -> str:
        upload_url = await self.storage.generate_upload_url()
        self.security.audit_logger.log(
            "info", "upload_url_generated", {}, user_id=ctx.user_id, ip=ctx.ip_address
        )
        return upload_url

    async def save_uploaded_image(
        self,
        ctx: RequestContext,
        storage_id: str,
        user_id: str,
        file_name: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> UUID:
        """Register an uploaded blob as a pending image record.

        Raises:
            Unauthorized: user_id is not the caller
            FileTooLarge: Reported size exceeds the upload limit
            InvalidFileType: Reported content type is not an allowed image type
        """
        return await self.security.run(
            self.save_policy,
            ctx,
            self._save_uploaded_image,
            storage_id,
            user_id,
            file_name=file_name,
            file_size=file_size,
            file_type=file_type,
        )

    async def _save_uploaded_image(
        self,
        ctx: RequestContext,
        storage_id: str,
        user_id: str,
        file_name: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> UUID:
        if ctx.user_id is None or ctx.user_id != user_id:
            raise Unauthorized()

        validate_file_metadata(file_size, file_type, self.max_upload_bytes)
        sanitized_name = (
            sanitize_input(file_name, max_length=FILE_NAME_MAX_LENGTH) if file_name else "image"
        )

        image_url = await self.storage.get_url(storage_id)

        async with await self.uow_factory() as uow:
            image = await uow.images.add(
                ImageRecord(
                    user_id=user_id,
                    original_storage_id=storage_id,
                    original_image_url=image_url,
                    file_name=sanitized_name,
                )
            )
            image_id = image.id

        self.security.audit_logger.log(
            "info",
            "image_saved",
            {"image_id": str(image_id), "file_size": file_size, "file_type": file_type},
            user_id=user_id,
            ip=ctx.ip_address,
        )
        logger.info("image.saved", image_id=str(image_id))
        return image_id

    async def list_images(
        self,
        ctx: RequestContext,
        user_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> ImagePage:
        """Page through a user's images, newest first (at most 100 per page)."""
        return await self.security.run(
            self.list_policy, ctx, self._list_images, user_id, limit=limit, cursor=cursor
        )

    async def _list_images(
        self,
        ctx: RequestContext,
        user_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> ImagePage:
        if ctx.user_id is None or ctx.user_id != user_id:
            raise Unauthorized()

        page_size = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
        before = parse_cursor(cursor)

        async with await self.uow_factory() as uow:
            images = await uow.images.list_by_user(user_id, limit=page_size, cursor=before)

        has_more = len(images) == page_size
        next_cursor = str(images[-1].created_at) if has_more else None
        return ImagePage(images=images, has_more=has_more, next_cursor=next_cursor)

    async def get_image(self, ctx: RequestContext, image_id: UUID) -> ImageRecord:
        """Current state of one of the caller's images (used for status polling)."""
        return await self.security.run(self.get_policy, ctx, self._get_image, image_id)

    async def _get_image(self, ctx: RequestContext, image_id: UUID) -> ImageRecord:
        async with await self.uow_factory() as uow:
            image = await uow.images.get_by_id(image_id)
        if image is None:
            raise RecordNotFound()
        if image.user_id != ctx.user_id:
            raise Unauthorized()
        return image
