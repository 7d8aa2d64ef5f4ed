"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from paperbag.models.image import ImageRecord, ImageStatus, InvalidStateTransition

__all__ = [
    "ImageRecord",
    "ImageStatus",
    "InvalidStateTransition",
]
