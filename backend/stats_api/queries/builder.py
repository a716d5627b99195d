"""Dialect-aware query builder.

``INTENTS`` is the single source of truth for every analytical query: its
shape, the parameters callers must bind and its row limit. Each shape is
rendered through the dialect templates, so SQLite and PostgreSQL always share
filters, grouping keys, ordering and limits.

Caller values are never rendered into the SQL text; they travel as named
bind parameters and the driver picks the placeholder style.
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stats_api.db.backend import Dialect
from stats_api.queries.classifier import COMPLETED_MARKER, TOOL_CALL_MARKER, case_expression
from stats_api.queries.dialects import SqlDialect, templates_for


class Intent(str, Enum):
    PING = "ping"
    TOTAL_USERS = "total_users"
    TOTAL_CHATS = "total_chats"
    ACTIVE_USERS = "active_users"
    ACTIVE_MODELS = "active_models"
    CONTENT_CHARS = "content_chars"
    BUILTIN_TOOL_CALLS = "builtin_tool_calls"
    MODEL_USAGE = "model_usage"
    DAILY_ACTIVITY = "daily_activity"
    USER_LEADERBOARD = "user_leaderboard"
    BUILTIN_TOOLS = "builtin_tools"
    INFERRED_TOOLS = "inferred_tools"


@dataclass(frozen=True)
class BuiltQuery:
    intent: Intent
    text: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IntentSpec:
    render: Callable[[SqlDialect], str]
    params: tuple[str, ...] = ()
    limit: int | None = None


# Shared fragments

def _messages(d: SqlDialect, chat: str = "c", alias: str = "msg") -> str:
    """``chat`` rows joined with every message in their history."""
    return f"chat {chat}{d.join_members(alias, d.document(f'{chat}.chat'), 'history', 'messages')}"


def _content(d: SqlDialect, alias: str = "msg") -> str:
    return d.json_text(f"{alias}.value", "content")


def _has_content(d: SqlDialect, alias: str = "msg") -> str:
    content = _content(d, alias)
    return f"{content} IS NOT NULL AND {content} <> ''"


def _status_events(d: SqlDialect) -> str:
    return _messages(d) + d.join_members("status", "msg.value", "statusHistory")


def _completed_action(d: SqlDialect) -> str:
    return f"{d.json_text('status.value', 'action')} IS NOT NULL AND {d.json_flag('status.value', 'done')}"


# Intent renderers

def _ping(d: SqlDialect) -> str:
    return "SELECT 1 AS ok"


def _total_users(d: SqlDialect) -> str:
    return 'SELECT COUNT(*) AS count FROM "user"'


def _total_chats(d: SqlDialect) -> str:
    return "SELECT COUNT(*) AS count FROM chat"


def _active_users(d: SqlDialect) -> str:
    return "SELECT COUNT(DISTINCT user_id) AS count FROM chat WHERE created_at > :since"


def _active_models(d: SqlDialect) -> str:
    return "SELECT COUNT(*) AS count FROM model WHERE is_active = TRUE"


def _content_chars(d: SqlDialect) -> str:
    return f"""
        SELECT SUM(LENGTH({_content(d)})) AS total_chars
        FROM {_messages(d)}
        WHERE {_has_content(d)}
    """


def _builtin_tool_calls(d: SqlDialect) -> str:
    return f"""
        SELECT COUNT(*) AS count
        FROM {_status_events(d)}
        WHERE {_completed_action(d)}
    """


def _model_usage(d: SqlDialect) -> str:
    model = d.json_text("msg.value", "model")
    return f"""
        SELECT
            {model} AS model,
            COUNT(*) AS usage_count,
            SUM(LENGTH(COALESCE({_content(d)}, ''))) AS total_chars
        FROM {_messages(d)}
        WHERE {model} IS NOT NULL
        GROUP BY {model}
        ORDER BY usage_count DESC, ({model}) {d.binary_collation} ASC
        LIMIT :limit
    """


def _daily_activity(d: SqlDialect) -> str:
    day = d.epoch_date("created_at")
    return f"""
        SELECT
            {day} AS date,
            COUNT(*) AS chat_count,
            COUNT(DISTINCT user_id) AS unique_users
        FROM chat
        WHERE created_at > :since
        GROUP BY {day}
        ORDER BY {day} DESC
    """


def _user_leaderboard(d: SqlDialect) -> str:
    return f"""
        SELECT
            u.id AS id,
            u.name AS name,
            u.role AS role,
            COUNT(c.id) AS chat_count,
            MAX(c.updated_at) AS last_activity,
            COALESCE(MAX(token_stats.total_chars), 0) AS total_chars
        FROM "user" u
        LEFT JOIN chat c ON u.id = c.user_id
        LEFT JOIN (
            SELECT tc.user_id AS user_id, SUM(LENGTH({_content(d)})) AS total_chars
            FROM {_messages(d, chat="tc")}
            WHERE {_has_content(d)}
            GROUP BY tc.user_id
        ) AS token_stats ON u.id = token_stats.user_id
        GROUP BY u.id, u.name, u.role
        ORDER BY chat_count DESC, u.id {d.binary_collation} ASC
        LIMIT :limit
    """


def _builtin_tools(d: SqlDialect) -> str:
    action = d.json_text("status.value", "action")
    return f"""
        SELECT
            {action} AS tool_name,
            COUNT(*) AS usage_count,
            COUNT(DISTINCT c.user_id) AS unique_users,
            COUNT(DISTINCT c.id) AS unique_chats,
            'builtin' AS tool_type
        FROM {_status_events(d)}
        WHERE {_completed_action(d)}
        GROUP BY {action}
    """


def _inferred_tools(d: SqlDialect) -> str:
    content = _content(d)
    label = textwrap.indent(case_expression(d, content), " " * 16).strip()
    return f"""
        WITH tool_extracts AS (
            SELECT DISTINCT
                c.user_id AS user_id,
                c.id AS chat_id,
                {label} AS tool_name
            FROM {_messages(d)}
            WHERE {d.contains(content, TOOL_CALL_MARKER)}
              AND {d.contains(content, COMPLETED_MARKER)}
        )
        SELECT
            tool_name,
            COUNT(*) AS usage_count,
            COUNT(DISTINCT user_id) AS unique_users,
            COUNT(DISTINCT chat_id) AS unique_chats,
            'custom' AS tool_type
        FROM tool_extracts
        WHERE tool_name IS NOT NULL
        GROUP BY tool_name
    """


INTENTS: dict[Intent, IntentSpec] = {
    Intent.PING: IntentSpec(_ping),
    Intent.TOTAL_USERS: IntentSpec(_total_users),
    Intent.TOTAL_CHATS: IntentSpec(_total_chats),
    Intent.ACTIVE_USERS: IntentSpec(_active_users, params=("since",)),
    Intent.ACTIVE_MODELS: IntentSpec(_active_models),
    Intent.CONTENT_CHARS: IntentSpec(_content_chars),
    Intent.BUILTIN_TOOL_CALLS: IntentSpec(_builtin_tool_calls),
    Intent.MODEL_USAGE: IntentSpec(_model_usage, limit=20),
    Intent.DAILY_ACTIVITY: IntentSpec(_daily_activity, params=("since",)),
    Intent.USER_LEADERBOARD: IntentSpec(_user_leaderboard, limit=50),
    Intent.BUILTIN_TOOLS: IntentSpec(_builtin_tools),
    Intent.INFERRED_TOOLS: IntentSpec(_inferred_tools),
}


def build(intent: Intent, dialect: Dialect, params: Mapping[str, Any] | None = None) -> BuiltQuery:
    """Render ``intent`` for ``dialect`` with ``params`` as bind parameters.

    An unknown intent or a missing/unexpected parameter is a programming
    error and raises ``ValueError``.
    """
    entry = INTENTS.get(intent)
    if entry is None:
        raise ValueError(f"Unknown query intent: {intent!r}")

    supplied = dict(params or {})
    missing = [name for name in entry.params if name not in supplied]
    unexpected = sorted(set(supplied) - set(entry.params))
    if missing or unexpected:
        raise ValueError(
            f"Bad parameters for {intent.value}: missing={missing} unexpected={unexpected}"
        )

    bound = {name: supplied[name] for name in entry.params}
    if entry.limit is not None:
        bound["limit"] = entry.limit

    text = textwrap.dedent(entry.render(templates_for(dialect))).strip()
    return BuiltQuery(intent=intent, text=text, params=bound)
