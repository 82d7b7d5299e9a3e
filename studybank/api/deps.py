"""
studybank.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import Engine

from studybank.config import StudybankConfig, load_config
from studybank.database.engine import create_db_engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> StudybankConfig:
    return load_config()
