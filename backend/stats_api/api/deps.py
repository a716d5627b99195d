from __future__ import annotations

from fastapi import Request

from stats_api.db.executor import QueryExecutor


class DatabaseNotConfigured(Exception):
    pass


def get_executor(request: Request) -> QueryExecutor:
    executor = getattr(request.app.state, "executor", None)
    if executor is None:
        raise DatabaseNotConfigured("Database not configured. Please complete setup first.")
    return executor


def get_request_id(request: Request | None) -> str | None:
    if request is None:
        return None
    return getattr(request.state, "request_id", None)
