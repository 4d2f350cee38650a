from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from bucketlab.config import get_settings

# Defined before settings load: the settings validator imports the models, which need Base
Base = declarative_base()

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.DEBUG}
    # SQLite pools do not take sizing arguments
    if not database_url.startswith("sqlite"):
        options.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
async_session_maker = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def get_db():
    """Request-scoped session; the repository commits its own writes."""
    async with async_session_maker() as session:
        yield session


async def init_db():
    """Create experiment tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
