from sqlalchemy import Uuid
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from rumorwatch.config import get_settings
from rumorwatch.db.change_feed import ChangeFeedSession

settings = get_settings()

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, pool_size=20, max_overflow=10)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    sync_session_class=ChangeFeedSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


# Native uuid on Postgres; CHAR(32) hex elsewhere so SQLite keeps ids as text
UUIDType = Uuid(as_uuid=True).with_variant(UUID(as_uuid=True), "postgresql")


async def get_db() -> AsyncSession:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
