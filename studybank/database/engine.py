"""
studybank.database.engine — Database Connection & Async Helper
===============================================================

Discord bots run on an ``asyncio`` event loop while SQLAlchemy + psycopg2
is synchronous.  A direct query from a Cog would freeze the whole bot
until it returns, so every DB call crosses a thread boundary:

    1. A Discord event fires (async world).
    2. The Cog calls ``await run_db(some_function, arg1, arg2)``.
    3. ``run_db`` ships the synchronous function to a thread pool via
       ``asyncio.to_thread()``.
    4. The DB work happens on a background thread; the event loop stays free.
    5. The result is awaited back in the Cog, which replies to the user.

Usage::

    from studybank.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async Cog method:
    account = await run_db(get_balance, engine, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine

from studybank.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    The pool is sized for one bot process plus the read-only API:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`studybank.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained as a safety net for dev/test
        environments where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call in a Cog goes through this wrapper::

        result = await run_db(my_sync_db_function, engine, user_id)

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor``.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
