"""ImageRecord repository for Paperbag backend.

Status transitions that guard duplicate work go through conditional updates
(`UPDATE ... WHERE status = :observed`) so two concurrent requests for the same
upload cannot both claim it.
"""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paperbag.core.clock import now_ms
from paperbag.models.image import ImageRecord, ImageStatus


class ImageRepository:
    """Repository for ImageRecord entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, image: ImageRecord) -> ImageRecord:
        """Persist new image record to database.

        Args:
            image: ImageRecord entity to persist

        Returns:
            Persisted record with generated ID
        """
        self.session.add(image)
        await self.session.flush()
        return image

    async def get_by_id(self, image_id: UUID) -> ImageRecord | None:
        """Retrieve image record by UUID."""
        result = await self.session.execute(
            select(ImageRecord).where(ImageRecord.id == image_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_storage_id(self, storage_id: str) -> ImageRecord | None:
        """Retrieve the image record created for an uploaded blob.

        The origin-storage reference is the idempotency key for transformation
        requests; when several rows share it the oldest one wins.

        Args:
            storage_id: Origin-storage reference returned by the blob store

        Returns:
            ImageRecord if found, None otherwise
        """
        result = await self.session.execute(
            select(ImageRecord)
            .where(ImageRecord.original_storage_id == storage_id)  # type: ignore[arg-type]
            .order_by(ImageRecord.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_user(
        self, user_id: str, limit: int = 20, cursor: int | None = None
    ) -> list[ImageRecord]:
        """Retrieve a page of a user's images, newest first.

        Args:
            user_id: Owner subject
            limit: Maximum number of records to return
            cursor: created_at (epoch ms) of the last record of the previous page;
                only strictly older records are returned

        Returns:
            List of records ordered by created_at descending
        """
        query = select(ImageRecord).where(ImageRecord.user_id == user_id)  # type: ignore[arg-type]
        if cursor is not None:
            query = query.where(ImageRecord.created_at < cursor)  # type: ignore[arg-type]
        result = await self.session.execute(
            query.order_by(ImageRecord.created_at.desc()).limit(limit)  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_by_status(self, status: ImageStatus, limit: int = 100) -> list[ImageRecord]:
        """Retrieve records in a given status, oldest first."""
        result = await self.session.execute(
            select(ImageRecord)
            .where(ImageRecord.status == status)  # type: ignore[arg-type]
            .order_by(ImageRecord.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(self, status: ImageStatus) -> int:
        """Count records in a given status."""
        result = await self.session.execute(
            select(func.count())
            .select_from(ImageRecord)
            .where(ImageRecord.status == status)  # type: ignore[arg-type]
        )
        return result.scalar_one()

    async def claim_for_processing(self, image: ImageRecord, style: str) -> bool:
        """Atomically move an image from its observed status to processing.

        Args:
            image: Record as read by the caller; refreshed from the database on return
            style: Requested cartoon style

        Returns:
            True if this call performed the transition, False if another writer
            changed the status first

        Raises:
            InvalidStateTransition: If the observed status cannot start processing
        """
        image.ensure_can_start_processing()
        return await self._compare_and_set(
            image,
            expected=image.status,
            status=ImageStatus.PROCESSING,
            style=style,
            error_message=None,
        )

    async def release_to_pending(self, image: ImageRecord) -> bool:
        """Atomically move an image from processing back to pending.

        Returns:
            True if the record was processing and is now pending
        """
        return await self._compare_and_set(
            image, expected=ImageStatus.PROCESSING, status=ImageStatus.PENDING
        )

    async def reset_processing_to_pending(self) -> int:
        """Reset every record stuck in processing back to pending.

        Jobs scheduled in-process are lost when the process restarts, so
        records left in processing would never complete.

        Returns:
            Number of records reset
        """
        result = await self.session.execute(
            update(ImageRecord)
            .where(ImageRecord.status == ImageStatus.PROCESSING)  # type: ignore[arg-type]
            .values(status=ImageStatus.PENDING, updated_at=now_ms())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def _compare_and_set(
        self, image: ImageRecord, expected: ImageStatus, **values
    ) -> bool:
        result = await self.session.execute(
            update(ImageRecord)
            .where(ImageRecord.id == image.id)  # type: ignore[arg-type]
            .where(ImageRecord.status == expected)  # type: ignore[arg-type]
            .values(updated_at=max(now_ms(), image.updated_at), **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(image)
        return result.rowcount == 1  # type: ignore[attr-defined]
