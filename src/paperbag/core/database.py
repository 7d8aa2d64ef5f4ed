"""Async engine and session factory."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Build the session factory for `db_url`.

    PostgreSQL (postgresql+psycopg://) gets a fixed-size, pre-pinged pool.
    SQLite (sqlite+aiosqlite://) shares one connection, which keeps
    in-memory databases alive between sessions; `pool_size` is unused there.
    """
    if db_url.startswith("sqlite"):
        engine = create_async_engine(
            db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    else:
        engine = create_async_engine(
            db_url, pool_size=pool_size, max_overflow=0, pool_pre_ping=True
        )

    # Loaded attributes stay readable after the unit of work commits
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
