from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def build_engine(url: str | None = None, **kwargs):
    """Create the async engine; tests pass their own URL."""
    return create_async_engine(
        url or settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        future=True,
        **kwargs,
    )


def build_session_factory(bind) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine()

AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
