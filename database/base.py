from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Создать async engine для указанного URL (используется и в тестах)"""
    return create_async_engine(url, echo=echo, future=True)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine_for(settings.database_url, echo=settings.log_level == "DEBUG")

async_session_factory = create_session_factory(engine)


async def init_db(bind: AsyncEngine = None):
    """Создать таблицы (по умолчанию в основном engine)"""
    import database.models  # noqa: F401  регистрирует все таблицы в Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
