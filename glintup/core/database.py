import ssl
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from glintup.config import get_settings
from glintup.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def normalize_database_url(url: str) -> tuple[str, dict]:
    """
    Strip libpq-only query params from a Postgres URL for asyncpg.

    Hosted Postgres URLs carry params like sslmode and channel_binding that
    asyncpg rejects. They are removed and SSL is passed via connect_args.

    - For SQLite URLs: returned untouched
    - For local dev (localhost/127.0.0.1/db): No SSL
    - Anything else: SSL with the default context
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)
    for param in ["sslmode", "channel_binding", "options"]:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    hostname = parsed.hostname or ""
    is_local = hostname in ("localhost", "127.0.0.1", "db")

    if is_local:
        return clean_url, {}
    ssl_context = ssl.create_default_context()
    return clean_url, {"ssl": ssl_context}


clean_url, connect_args = normalize_database_url(settings.database_url)

_engine_kwargs: dict = {"echo": settings.debug, "connect_args": connect_args}
if not clean_url.startswith("sqlite"):
    _engine_kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=280)

engine = create_async_engine(clean_url, **_engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise
