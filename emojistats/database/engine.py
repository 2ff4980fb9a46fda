"""
emojistats.database.engine — Engine, Sessions & the Event-Loop Bridge
=====================================================================

**Why this file exists:**
Every emoji counted and every ranking served goes through a blocking
SQLAlchemy call, while discord.py delivers messages on a single ``asyncio``
loop.  A slow ranking query must not stall message intake, so the cogs and
the dispatcher never query inline.  They hand the work to :func:`run_db`,
which runs it on the default thread pool and awaits the result.

Each service function opens its own :func:`get_session`, so one call is one
transaction.  That is what makes :func:`record_message
<emojistats.services.usage_service.record_message>` all-or-nothing.

Usage::

    engine = create_db_engine()                       # DATABASE_URL from .env
    init_db(engine)
    result = await run_db(record_message, engine, message, emoji)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from emojistats.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the bot's :class:`Engine` from *url* or ``DATABASE_URL``.

    PostgreSQL gets a small bounded pool (one bot process, a handful of
    worker threads); ``pool_timeout`` makes a starved query fail instead of
    queueing forever.  SQLite URLs are accepted for local runs and share a
    single connection across worker threads.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at your PostgreSQL database."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_timeout=10,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
    logger.info(
        "Database engine ready (%s on %s)",
        parsed.get_backend_name(), parsed.host or parsed.database,
    )
    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables.

    Alembic owns the schema in production (``alembic upgrade head``); this
    only fills the gap for a fresh local database.
    """
    Base.metadata.create_all(engine)
    logger.info("Emoji statistics tables present")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """One unit of work: commit when the block exits, roll back if it raises."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await blocking *func* on a worker thread so the gateway loop keeps running."""
    return await asyncio.to_thread(func, *args, **kwargs)
