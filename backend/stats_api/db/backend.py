"""Backend selection: connection string -> dialect -> shared async engine.

The engine is created once at startup and shared by every request. SQLite
files are opened read-only through a URI filename; PostgreSQL gets a pool.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from stats_api.core.config import Settings

logger = logging.getLogger(__name__)


class Dialect(str, Enum):
    ROW_STORE = "sqlite"
    DOCUMENT_RELATIONAL = "postgresql"


class UnsupportedDatabaseURL(ValueError):
    pass


_SCHEME_DIALECTS = {
    "sqlite": Dialect.ROW_STORE,
    "postgres": Dialect.DOCUMENT_RELATIONAL,
    "postgresql": Dialect.DOCUMENT_RELATIONAL,
}


# libpq spellings that asyncpg accepts under another name
_ASYNCPG_QUERY_KEYS = {"sslmode": "ssl"}


def _parse(url: str) -> URL:
    try:
        return make_url(url)
    except ArgumentError as exc:
        raise UnsupportedDatabaseURL(f"Invalid database URL: {exc}") from exc


def resolve_dialect(url: str) -> Dialect:
    parsed = _parse(url)
    scheme = parsed.drivername.split("+", 1)[0]
    dialect = _SCHEME_DIALECTS.get(scheme)
    if dialect is None:
        raise UnsupportedDatabaseURL("Unsupported database URL. Only SQLite and PostgreSQL are supported.")
    return dialect


def sqlite_path(url: str) -> Path:
    database = _parse(url).database
    if not database or database == ":memory:":
        raise UnsupportedDatabaseURL("SQLite URL must point to a database file")
    return Path(database).expanduser()


def to_async_url(url: str) -> URL:
    dialect = resolve_dialect(url)
    if dialect is Dialect.ROW_STORE:
        path = sqlite_path(url).resolve()
        return URL.create(
            "sqlite+aiosqlite",
            database=f"file:{path}",
            query={"mode": "ro", "uri": "true"},
        )
    parsed = _parse(url)
    query = {_ASYNCPG_QUERY_KEYS.get(key, key): value for key, value in parsed.query.items()}
    return parsed.set(drivername="postgresql+asyncpg", query=query)


def create_backend_engine(url: str, settings: Settings) -> AsyncEngine:
    dialect = resolve_dialect(url)
    async_url = to_async_url(url)

    if dialect is Dialect.ROW_STORE:
        engine = create_async_engine(async_url, isolation_level="AUTOCOMMIT")
    else:
        engine = create_async_engine(
            async_url,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            pool_recycle=settings.pool_recycle,
            pool_pre_ping=True,
            isolation_level="AUTOCOMMIT",
        )

    logger.info(
        "Database engine created for %s",
        async_url.render_as_string(hide_password=True),
        extra={"dialect": dialect.value},
    )
    return engine
