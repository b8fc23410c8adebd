from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
async_session = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session scoped to one unit of work.

    Commits when the block exits cleanly; any exception (cancellation
    included) rolls the whole transaction back.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


def is_unique_violation(
    exc: IntegrityError, constraint: str, columns: Sequence[str] = ()
) -> bool:
    """Tell a specific unique-constraint failure apart from other integrity errors."""
    message = str(exc.orig)
    # PostgreSQL reports the constraint name
    if constraint in message:
        return True
    # SQLite reports "UNIQUE constraint failed: table.col, ..."
    return "UNIQUE constraint failed" in message and all(c in message for c in columns)
