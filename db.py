# ===============================================================
# db.py — Central async SQLAlchemy setup
# ===============================================================
import logging
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
)
from sqlalchemy.orm import sessionmaker

# Import Base and models cleanly (models must be imported so the tables register)
from base import Base
import models  # noqa: F401
from config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Database URL normalisation
# -------------------------------------------------
def normalize_database_url(url: str) -> str:
    """Ensure an async driver is used (asyncpg for Postgres)."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and "+aiosqlite" not in url:
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


# -------------------------------------------------
# Engine & Async Session Factory builders
# -------------------------------------------------
def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        new_engine = create_async_engine(url, echo=echo, future=True)

        # SQLite ignores foreign keys unless asked per connection
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_sqlite_fk(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,     # checks if connection is alive
        pool_recycle=1800,      # recycle connections every 30 mins
        future=True,
    )


def make_sessionmaker(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
    )


engine = make_engine(DATABASE_URL, echo=SQL_ECHO)

# This is the async session factory the whole app should import
async_sessionmaker = make_sessionmaker(engine)


# -------------------------------------------------
# Database Initialization (development only)
# -------------------------------------------------
async def init_db(bind: AsyncEngine = None):
    """Create any missing tables (create_all, no migrations)."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database initialized (players, completed_tasks, referral_records)")


# -------------------------------------------------
# Health Check Utility
# -------------------------------------------------
async def test_connection(bind: AsyncEngine = None) -> bool:
    """Quick check if DB is reachable."""
    bind = bind or engine
    try:
        async with bind.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("🔌 Database connection OK")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        raise
