# storefront/app/db.py

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from storefront.app.config import settings

# ---------------------------------------------------------
# Prometheus Metrics
# ---------------------------------------------------------
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

DB_QUERY_LATENCY = Histogram(
    "db_query_latency_seconds",
    "Latency of document store operations (commit/query/rollback)"
)

DB_COMMIT_TOTAL = Counter(
    "db_commit_total",
    "Total DB commit operations",
    ["result"]  # ok | failed
)

DB_INIT_FAILURE_TOTAL = Counter(
    "db_init_failure_total",
    "DB initialization failures"
)

Base = declarative_base()


# ---------------------------------------------------------
# DATABASE ENGINE INIT
# ---------------------------------------------------------
def make_engine(url: str = None) -> AsyncEngine:
    url = url or settings.DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_async_engine(url, connect_args=connect_args)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


# ---------------------------------------------------------
# DB INIT FUNCTION
# ---------------------------------------------------------
async def init_db(bind: AsyncEngine):
    """
    Create tables from models. Called at startup.
    """
    # models must be imported so they register on Base.metadata
    from storefront.app.models import record  # noqa: F401

    try:
        with DB_QUERY_LATENCY.time():
            async with bind.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        DB_INIT_FAILURE_TOTAL.inc()
        logger.error("Error initializing DB: %s", e)
        raise


# ---------------------------------------------------------
# SAFE HELPERS FOR COMMIT
# ---------------------------------------------------------
async def safe_commit(db):
    """
    Commit with metrics instrumentation.
    """
    with DB_QUERY_LATENCY.time():
        try:
            await db.commit()
            DB_COMMIT_TOTAL.labels(result="ok").inc()
        except Exception:
            DB_COMMIT_TOTAL.labels(result="failed").inc()
            await db.rollback()
            raise
