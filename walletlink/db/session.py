from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from walletlink.config import settings
from walletlink.db.models import Base


def create_engine_for(url: str | None = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        # Concurrent binds from several requests contend on the single SQLite
        # writer; wait for the file lock instead of failing with "database is locked".
        return create_async_engine(
            url,
            echo=settings.DEBUG,
            poolclass=NullPool,
            connect_args={"timeout": settings.DB_SQLITE_BUSY_TIMEOUT_SECONDS},
        )

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
    )


engine = create_engine_for()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_session():
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables(bind: AsyncEngine | None = None) -> None:
    """Create missing tables without Alembic (dev SQLite files, one-shot scripts)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
