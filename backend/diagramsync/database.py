from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from diagramsync.config import settings
from diagramsync.utils.logging_config import database_logger


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Async engine olustur.
    SQLite (test / on-device) pool ayarlarini kabul etmez, sadece pooled URL'lere verilir.
    """
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=settings.DB_POOL_PRE_PING,
        )
    return create_async_engine(database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
async_session = build_session_factory(engine)


class Base(DeclarativeBase):
    pass


async def create_schema(bind: AsyncEngine) -> None:
    # Model modullerinin import edilmesi metadata'yi doldurur
    from diagramsync import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    database_logger.info("Initializing database...")
    await create_schema(engine)
    database_logger.success("Database schema created/updated")


async def close_db():
    await engine.dispose()
    database_logger.info("Database engine disposed")
