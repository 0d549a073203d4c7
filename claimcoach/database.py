from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from claimcoach.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # aiosqlite runs the connection on its own thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_async_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=False,
    **_engine_options(settings.SQLALCHEMY_DATABASE_URI),
)

# Also used outside requests: workflow collaborators open one session per call
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


# Dependency
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
