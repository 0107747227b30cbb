import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from core.config import settings

Base = declarative_base()
logger = logging.getLogger("creditodds.db")

# Sync driver prefixes rewritten to their async counterparts
ASYNC_DRIVERS = {
    "mysql://": "mysql+aiomysql://",
    "mysql+pymysql://": "mysql+aiomysql://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(url: str) -> str:
    for prefix, replacement in ASYNC_DRIVERS.items():
        if url and url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def pool_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # aiosqlite pools do not accept sizing arguments
        return {}
    # pool_recycle stays below MySQL wait_timeout
    return {
        "pool_pre_ping": bool(settings.DB_PRE_PING),
        "pool_recycle": int(settings.DB_POOL_RECYCLE),
        "pool_size": int(settings.DB_POOL_SIZE),
        "max_overflow": int(settings.DB_MAX_OVERFLOW),
        "pool_timeout": int(settings.DB_POOL_TIMEOUT),
        "connect_args": {"connect_timeout": int(settings.DB_CONNECT_TIMEOUT)},
    }


DATABASE_URL = to_async_url(settings.DATABASE_URL)
engine = create_async_engine(DATABASE_URL, echo=False, **pool_options(DATABASE_URL))
SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def get_db_session():
    """Request-scoped session; rolled back if the handler raises."""
    async with SessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """Factory for work that outlives the request session, such as the audit sink."""
    return SessionLocal


@asynccontextmanager
async def get_or_use_session(db: Optional[AsyncSession]):
    """Reuse the caller's session, or open (and close) a fresh one."""
    if db is not None:
        yield db
        return
    async with SessionLocal() as own:
        try:
            yield own
        except Exception:
            await own.rollback()
            raise


@event.listens_for(engine.sync_engine, "checkout")
def _log_checkout(dbapi_connection, connection_record, connection_proxy):
    logger.debug("pool checkout id=%s", id(connection_record))


@event.listens_for(engine.sync_engine, "checkin")
def _log_checkin(dbapi_connection, connection_record):
    logger.debug("pool checkin id=%s", id(connection_record))
