from __future__ import annotations

import logging
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from stats_api.db.backend import Dialect
from stats_api.queries.builder import BuiltQuery
from stats_api.utils.serialization import to_jsonable

logger = logging.getLogger(__name__)


class QueryExecutionFailed(Exception):
    """The backend rejected or could not run a query."""


def _backend_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


class QueryExecutor:
    """Runs built queries against the shared engine, one round trip per call.

    Rows come back as plain dicts with JSON-ready values regardless of the
    driver, so callers never see driver-specific row types.
    """

    def __init__(self, engine: AsyncEngine, dialect: Dialect):
        self.engine = engine
        self.dialect = dialect

    async def execute(self, query: BuiltQuery) -> list[dict[str, Any]]:
        started = time.monotonic()
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(query.text), query.params)
                rows = [
                    {key: to_jsonable(value) for key, value in row.items()}
                    for row in result.mappings().all()
                ]
        except SQLAlchemyError as exc:
            message = _backend_message(exc)
            logger.error(
                "Query failed: %s",
                message,
                extra={"intent": query.intent.value, "dialect": self.dialect.value},
            )
            raise QueryExecutionFailed(message) from exc

        logger.debug(
            "Query executed",
            extra={
                "intent": query.intent.value,
                "dialect": self.dialect.value,
                "rows": len(rows),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return rows

    async def execute_single(self, query: BuiltQuery) -> dict[str, Any]:
        """First row, or an empty dict when nothing matched."""
        rows = await self.execute(query)
        return rows[0] if rows else {}
