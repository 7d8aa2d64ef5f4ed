"""ImageRecord entity - uploaded photo with transformation status tracking."""

from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

from paperbag.core.clock import now_ms


class ImageStatus(str, Enum):
    """Image transformation status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid image state transition."""

    pass


FILE_NAME_MAX_LENGTH = 255


class ImageRecord(SQLModel, table=True):
    """ImageRecord tracks one uploaded photo and its cartoon derivative."""

    __tablename__ = "images"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    original_storage_id: str = Field(max_length=255, index=True)
    original_image_url: Optional[str] = Field(default=None)
    cartoon_storage_id: Optional[str] = Field(default=None, max_length=255)
    cartoon_image_url: Optional[str] = Field(default=None)
    style: Optional[str] = Field(default=None, max_length=50)
    file_name: Optional[str] = Field(default=None, max_length=FILE_NAME_MAX_LENGTH)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    status: ImageStatus = Field(default=ImageStatus.PENDING, index=True)
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger, index=True)
    updated_at: int = Field(default_factory=now_ms, sa_type=BigInteger)

    @property
    def is_transformed(self) -> bool:
        """True when generation completed and the derived URL is available."""
        return self.status == ImageStatus.COMPLETED and bool(self.cartoon_image_url)

    def touch(self) -> None:
        """Advance updated_at, never moving it backwards."""
        self.updated_at = max(now_ms(), self.updated_at)

    def ensure_can_start_processing(self) -> None:
        """Check that a new transformation may start from the current status.

        Allowed from pending, failed, error, and from completed when the
        derived image is missing.

        Raises:
            InvalidStateTransition: If the image is already processing or transformed
        """
        if self.status == ImageStatus.PROCESSING or self.is_transformed:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. "
                "Image is already processing or transformed."
            )

    def mark_completed(self, cartoon_storage_id: str, cartoon_image_url: str) -> None:
        """Transition from processing to completed.

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If the derived reference or URL is empty
        """
        if self.status != ImageStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Image must be in processing state."
            )
        if not cartoon_storage_id or not cartoon_image_url:
            raise ValueError("cartoon_storage_id and cartoon_image_url are required")
        self.cartoon_storage_id = cartoon_storage_id
        self.cartoon_image_url = cartoon_image_url
        self.status = ImageStatus.COMPLETED
        self.touch()

    def mark_failed(self, error: str, status: ImageStatus = ImageStatus.FAILED) -> None:
        """Transition from processing to failed (or error).

        Args:
            error: Failure reason reported by the generation job
            status: FAILED for permanent failures, ERROR for transient ones

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If status is not a failure status
        """
        if status not in (ImageStatus.FAILED, ImageStatus.ERROR):
            raise ValueError(f"{status.value} is not a failure status")
        if self.status != ImageStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark {status.value} from {self.status.value}. "
                "Image must be in processing state."
            )
        self.error_message = error[:1000]
        self.cartoon_storage_id = None
        self.cartoon_image_url = None
        self.status = status
        self.touch()
