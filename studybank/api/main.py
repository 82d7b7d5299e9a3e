"""
studybank.api.main — FastAPI application entry point
=====================================================

Read-only view of the bank for dashboards and scripts.  Nothing here can
change a balance.

Run with::

    uvicorn studybank.api.main:app --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from studybank import __version__  # noqa: E402
from studybank.api.deps import get_engine  # noqa: E402
from studybank.api.routes.public import router as public_router  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Studybank API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Studybank API shutting down")


app = FastAPI(
    title="Studybank API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(public_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
