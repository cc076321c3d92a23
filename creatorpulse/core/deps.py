from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Uncommitted work is rolled back if the request handler raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
