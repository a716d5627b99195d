from __future__ import annotations

import time
from typing import Any

from stats_api.db.executor import QueryExecutor
from stats_api.queries.builder import BuiltQuery, Intent, build
from stats_api.schemas.stats import DailyActivity, ModelUsage, OverviewStats, ToolUsage, UserStats

SECONDS_PER_DAY = 24 * 60 * 60
ACTIVE_USER_WINDOW_DAYS = 30
DEFAULT_ACTIVITY_DAYS = 30
TOOL_USAGE_LIMIT = 20
CHARS_PER_TOKEN = 4


def estimate_tokens(total_chars: int | None) -> int:
    """Approximate token count: characters / 4, rounded half up."""
    chars = max(int(total_chars or 0), 0)
    return (chars + CHARS_PER_TOKEN // 2) // CHARS_PER_TOKEN


def _int(row: dict[str, Any], key: str) -> int:
    return int(row.get(key) or 0)


def _now(now: int | None) -> int:
    return int(time.time()) if now is None else now


def _query(executor: QueryExecutor, intent: Intent, **params: Any) -> BuiltQuery:
    return build(intent, executor.dialect, params)


async def get_overview(executor: QueryExecutor, *, now: int | None = None) -> OverviewStats:
    since = _now(now) - ACTIVE_USER_WINDOW_DAYS * SECONDS_PER_DAY

    chars = await executor.execute_single(_query(executor, Intent.CONTENT_CHARS))
    tool_calls = await executor.execute_single(_query(executor, Intent.BUILTIN_TOOL_CALLS))
    users = await executor.execute_single(_query(executor, Intent.TOTAL_USERS))
    chats = await executor.execute_single(_query(executor, Intent.TOTAL_CHATS))
    active = await executor.execute_single(_query(executor, Intent.ACTIVE_USERS, since=since))
    models = await executor.execute_single(_query(executor, Intent.ACTIVE_MODELS))

    return OverviewStats(
        total_users=_int(users, "count"),
        total_chats=_int(chats, "count"),
        active_users=_int(active, "count"),
        total_models=_int(models, "count"),
        estimated_tokens=estimate_tokens(chars.get("total_chars")),
        tool_usage=_int(tool_calls, "count"),
    )


async def get_model_usage(executor: QueryExecutor) -> list[ModelUsage]:
    rows = await executor.execute(_query(executor, Intent.MODEL_USAGE))
    return [
        ModelUsage(
            model=str(row["model"]),
            usage_count=_int(row, "usage_count"),
            total_chars=_int(row, "total_chars"),
            estimated_tokens=estimate_tokens(row.get("total_chars")),
        )
        for row in rows
    ]


async def get_activity(
    executor: QueryExecutor,
    days: int = DEFAULT_ACTIVITY_DAYS,
    *,
    now: int | None = None,
) -> list[DailyActivity]:
    """Chats and distinct users per UTC day over the trailing ``days`` window."""
    since = _now(now) - days * SECONDS_PER_DAY
    rows = await executor.execute(_query(executor, Intent.DAILY_ACTIVITY, since=since))
    return [
        DailyActivity(
            date=str(row["date"]),
            chat_count=_int(row, "chat_count"),
            unique_users=_int(row, "unique_users"),
        )
        for row in rows
    ]


async def get_user_leaderboard(executor: QueryExecutor) -> list[UserStats]:
    rows = await executor.execute(_query(executor, Intent.USER_LEADERBOARD))
    return [
        UserStats(
            id=str(row["id"]),
            name=row.get("name"),
            role=row.get("role"),
            chat_count=_int(row, "chat_count"),
            last_activity=row.get("last_activity"),
            estimated_tokens=estimate_tokens(row.get("total_chars")),
        )
        for row in rows
    ]


async def get_tool_usage(executor: QueryExecutor) -> list[ToolUsage]:
    """Built-in and content-inferred tools, merged and ranked by usage.

    The two sets come from independent queries and keep their own
    ``tool_type``; a built-in action that shares a name with an inferred
    label is reported as two rows.
    """
    builtin = await executor.execute(_query(executor, Intent.BUILTIN_TOOLS))
    inferred = await executor.execute(_query(executor, Intent.INFERRED_TOOLS))

    tools = [
        ToolUsage(
            tool_name=str(row["tool_name"]),
            usage_count=_int(row, "usage_count"),
            unique_users=_int(row, "unique_users"),
            unique_chats=_int(row, "unique_chats"),
            tool_type=row["tool_type"],
        )
        for row in [*builtin, *inferred]
    ]
    tools.sort(key=lambda tool: (-tool.usage_count, tool.tool_type, tool.tool_name))
    return tools[:TOOL_USAGE_LIMIT]
