import logging
import ssl
from urllib.parse import urlparse

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.core.config import DATABASE_URL

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """
    Rewrite a provider-style Postgres URL into one asyncpg accepts.

    - strips the '?sslmode=...' parameter (asyncpg fails if it sees it)
    - switches the scheme to postgresql+asyncpg
    """
    if "?sslmode=" in database_url:
        logger.info("[DB] Cleaning URL parameters (removing sslmode)")
        database_url = database_url.split("?sslmode=")[0]

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return database_url


def build_connect_args(database_url: str) -> dict:
    """
    SSL context for remote Postgres hosts; nothing for local/docker or SQLite.
    """
    parsed = urlparse(database_url)
    if not parsed.scheme.startswith("postgresql"):
        return {}

    host = parsed.hostname or ""
    if host in ("db", "localhost", "127.0.0.1"):
        logger.info("[DB] Local/Docker database detected, SSL disabled")
        return {}

    logger.info("[DB] Creating SSL context for remote database")
    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE
    return {"ssl": ssl_context}


if not DATABASE_URL:
    raise ValueError("DATABASE_URL is missing")

database_url = normalize_database_url(DATABASE_URL)

engine = create_async_engine(
    database_url,
    echo=False,
    connect_args=build_connect_args(database_url),
    poolclass=NullPool,  # Disable pooling for serverless deployments
)

# Session factory
async_session_maker = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


# Base class for models (Tables)
class Base(DeclarativeBase):
    pass


# Dependency to get DB session in FastAPI endpoints
async def get_db():
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
