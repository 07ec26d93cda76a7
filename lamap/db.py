"""
lamap.db

Database connectivity for LaMap.

Nothing connects at import time: callers build an engine explicitly with
create_db_engine() and pass it down (stores, flows, CLI).

DATABASE_URL is expected in the environment (or a .env file loaded by the entry point).
"""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def normalize_database_url(raw: str) -> str:
    """
    Normalize DATABASE_URL variants to something SQLAlchemy can reliably use.

    We prefer psycopg2 (psycopg2-binary is the declared driver).

    Normalizations:
    - postgres://  -> postgresql://
    - postgresql+psycopg:// -> postgresql+psycopg2://
    """
    url = (raw or "").strip()

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://") :]

    if url.startswith("postgresql+psycopg://"):
        url = "postgresql+psycopg2://" + url[len("postgresql+psycopg://") :]

    return url


def create_db_engine(url: Optional[str] = None, **kwargs) -> Engine:
    raw = url if url is not None else os.environ.get("DATABASE_URL", "")
    if not (raw or "").strip():
        raise RuntimeError(
            "DATABASE_URL is not set in environment. "
            "Export it or put it in a .env file before running the pipeline."
        )
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(normalize_database_url(raw), future=True, **kwargs)
