from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from inventory_backend.app.core.settings import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    url = settings.db_url
    if url.startswith("sqlite"):
        return create_async_engine(url=url, echo=False)
    return create_async_engine(
        url=url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # drop dead connections before handing them out
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,
    )


engine = build_engine(get_settings())
async_session = async_sessionmaker(engine, expire_on_commit=False)
