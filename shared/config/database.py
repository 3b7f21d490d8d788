from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
import os
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession

load_dotenv()

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "storefront")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_POOL_TIMEOUT = float(os.getenv("DB_POOL_TIMEOUT", "10"))


def build_engine(url: str = DATABASE_URL, **kwargs):
    """Create an async engine; pool sizing only applies to server databases."""
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", DB_POOL_SIZE)
        kwargs.setdefault("pool_timeout", DB_POOL_TIMEOUT)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=DB_ECHO, **kwargs)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def apply_lock_timeout(db: AsyncSession, timeout_ms: int) -> None:
    """Bound row-lock waits for the work done on this session.

    PostgreSQL scopes the setting to the current transaction. MySQL only has
    a session-level variable, so the value stays on the pooled connection
    until it is set again; every transaction this service opens sets it
    first. Other dialects rely on the operation timeout alone.
    """
    if timeout_ms <= 0:
        return
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = {int(timeout_ms)}"))
    elif dialect in ("mysql", "mariadb"):
        seconds = max(1, int(timeout_ms) // 1000)
        await db.execute(text(f"SET SESSION innodb_lock_wait_timeout = {seconds}"))
