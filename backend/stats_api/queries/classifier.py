"""Tool-tag classifier for tools that only show up in rendered message content.

Custom tools leave no status events behind; the chat UI renders their calls
into the message body as ``<details type="tool_calls" done="true" ...
name="tool_send_gmail" ...>`` blocks. Each rule below is a case-sensitive
substring test, evaluated in order, and the first match wins.

The same ordered table feeds both the in-process ``classify`` and the SQL
``CASE`` expression for either dialect.
"""

from __future__ import annotations

from dataclasses import dataclass

from stats_api.queries.dialects import SqlDialect

TOOL_CALL_MARKER = '<details type="tool_calls"'
COMPLETED_MARKER = 'done="true"'


@dataclass(frozen=True)
class ToolRule:
    label: str
    needle: str


def _call(name: str) -> str:
    return f'name="{name}"'


def _call_prefix(name: str) -> str:
    return f'name="{name}'


TOOL_RULES: tuple[ToolRule, ...] = (
    ToolRule("google_calendar", _call("tool_get_events_post")),
    ToolRule("google_calendar", _call("tool_list_calendars_post")),
    ToolRule("google_calendar", _call("tool_create_event_post")),
    ToolRule("google_calendar", _call("tool_delete_event_post")),
    ToolRule("google_calendar", _call("tool_modify_event_post")),
    ToolRule("gmail", _call_prefix("tool_get_gmail")),
    ToolRule("gmail", _call_prefix("tool_search_gmail")),
    ToolRule("gmail", _call_prefix("tool_send_gmail")),
    ToolRule("gmail", _call_prefix("tool_draft_gmail")),
    ToolRule("gmail", _call_prefix("tool_modify_gmail")),
    ToolRule("todoist", _call("get_today_tasks")),
    ToolRule("todoist", _call("get_upcoming_tasks")),
    ToolRule("todoist", _call("get_todoist_tasks")),
    ToolRule("todoist", _call("resolve_todoist_task")),
    ToolRule("accuweather", _call("get_current_weather")),
    ToolRule("accuweather", _call_prefix("get_future_weather")),
    ToolRule("google_drive", _call_prefix("tool_search_drive")),
    ToolRule("google_drive", _call_prefix("tool_get_drive")),
    ToolRule("google_drive", _call_prefix("tool_create_drive")),
    ToolRule("google_drive", _call_prefix("tool_list_drive")),
    ToolRule("google_docs", _call_prefix("tool_search_docs")),
    ToolRule("google_docs", _call_prefix("tool_get_doc")),
    ToolRule("google_docs", _call_prefix("tool_create_doc")),
    ToolRule("slack", _call_prefix("slack_")),
    ToolRule("google_spaces", _call_prefix("tool_list_spaces")),
    # QuantConnect tools are matched by vendor name anywhere in the content.
    ToolRule("quantconnect", "quantbook"),
    ToolRule("quantconnect", "quantconnect"),
)


def has_completed_tool_call(content: str | None) -> bool:
    return bool(content) and TOOL_CALL_MARKER in content and COMPLETED_MARKER in content


def match_rule(content: str, rules: tuple[ToolRule, ...] = TOOL_RULES) -> ToolRule | None:
    for rule in rules:
        if rule.needle in content:
            return rule
    return None


def classify(content: str | None, rules: tuple[ToolRule, ...] = TOOL_RULES) -> str | None:
    """Label of the first matching rule, or None.

    Content without a completed tool-call block is never labelled.
    """
    if not has_completed_tool_call(content):
        return None
    rule = match_rule(content, rules)
    return rule.label if rule else None


def case_expression(dialect: SqlDialect, content_expr: str, rules: tuple[ToolRule, ...] = TOOL_RULES) -> str:
    branches = "\n".join(
        f"    WHEN {dialect.contains(content_expr, rule.needle)} THEN {dialect.literal(rule.label)}"
        for rule in rules
    )
    return f"CASE\n{branches}\n    ELSE NULL\nEND"
