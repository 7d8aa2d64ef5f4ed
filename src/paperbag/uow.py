"""Transaction boundary around the image repository."""

from typing import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperbag.repositories.image import ImageRepository

logger = structlog.get_logger()


class UnitOfWork:
    """One session, one transaction.

    Commits when the `async with` block finishes cleanly and rolls back when it
    raises; the exception still propagates. Typical use:

        async with await uow_factory() as uow:
            image = await uow.images.get_by_storage_id(storage_id)
            await uow.images.claim_for_processing(image, "anime")
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.images = ImageRepository(session)

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            if exc_type is not None:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
            else:
                await self.session.commit()
                logger.debug("transaction.committed")
        finally:
            await self.session.close()
        return False


UowFactory = Callable[[], Awaitable[UnitOfWork]]


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]) -> UowFactory:
    """Bind a session factory; each call of the result opens a fresh UnitOfWork."""

    async def open_uow() -> UnitOfWork:
        return UnitOfWork(session_factory())

    return open_uow
