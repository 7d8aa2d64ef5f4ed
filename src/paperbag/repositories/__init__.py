"""Repository layer for Paperbag backend.

Provides data access abstractions for all domain entities.
"""

from paperbag.repositories.image import ImageRepository

__all__ = [
    "ImageRepository",
]
