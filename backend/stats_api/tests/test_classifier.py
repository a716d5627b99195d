from __future__ import annotations

import re

import pytest

from stats_api.db.backend import Dialect
from stats_api.queries.classifier import TOOL_RULES, ToolRule, case_expression, classify, match_rule
from stats_api.queries.dialects import templates_for

from webui_fixtures import CALENDAR_AND_GMAIL_CALL, GMAIL_CALL, PENDING_GMAIL_CALL


def _completed_call(name: str) -> str:
    return f'<details type="tool_calls" done="true" name="{name}" arguments="{{}}">\n</details>'


def test_send_gmail_call_classifies_as_gmail() -> None:
    assert classify(_completed_call("tool_send_gmail")) == "gmail"
    assert classify(GMAIL_CALL) == "gmail"


def test_first_matching_rule_wins() -> None:
    # Both a calendar and a gmail call are present; calendar rules come first.
    assert classify(CALENDAR_AND_GMAIL_CALL) == "google_calendar"


def test_earlier_rule_in_custom_table_wins() -> None:
    rules = (ToolRule("second", "beta"), ToolRule("first", "alpha"))
    content = _completed_call("alpha_beta")
    assert classify(content, rules) == "second"
    assert classify(content, tuple(reversed(rules))) == "first"


@pytest.mark.parametrize(
    ("tool_name", "label"),
    [
        ("tool_list_calendars_post", "google_calendar"),
        ("tool_draft_gmail_post", "gmail"),
        ("get_upcoming_tasks", "todoist"),
        ("get_current_weather", "accuweather"),
        ("get_future_weather_post", "accuweather"),
        ("tool_list_drive_files", "google_drive"),
        ("tool_get_document", "google_docs"),
        ("slack_post_message", "slack"),
        ("tool_list_spaces_post", "google_spaces"),
    ],
)
def test_known_tool_names(tool_name: str, label: str) -> None:
    assert classify(_completed_call(tool_name)) == label


def test_exact_rules_do_not_match_longer_names() -> None:
    assert classify(_completed_call("get_current_weather_v2")) is None


def test_vendor_names_match_anywhere_in_content() -> None:
    content = _completed_call("run_backtest") + "\nquantconnect backtest finished"
    assert classify(content) == "quantconnect"


def test_vendor_names_need_no_trailing_quote() -> None:
    content = _completed_call("run_backtest") + "\nopened quantbook"
    assert '"' not in content.split("quantbook", 1)[1]
    assert classify(content) == "quantconnect"


def test_matching_is_case_sensitive() -> None:
    assert classify(_completed_call("TOOL_SEND_GMAIL")) is None


def test_pending_tool_call_is_not_labelled() -> None:
    assert match_rule(PENDING_GMAIL_CALL) is not None
    assert classify(PENDING_GMAIL_CALL) is None


def test_content_without_tool_call_block_is_not_labelled() -> None:
    assert classify('I called name="tool_send_gmail" for you, done="true"') is None
    assert classify("") is None
    assert classify(None) is None


def test_unknown_tool_is_not_labelled() -> None:
    assert classify(_completed_call("tool_unknown")) is None


@pytest.mark.parametrize("dialect", list(Dialect))
def test_case_expression_keeps_rule_order(dialect: Dialect) -> None:
    sql = case_expression(templates_for(dialect), "content")

    labels = re.findall(r"THEN '([a-z_]+)'", sql)
    assert labels == [rule.label for rule in TOOL_RULES]
    assert sql.count("WHEN ") == len(TOOL_RULES)
    assert sql.rstrip().endswith("ELSE NULL\nEND")


def test_case_expression_needles_match_between_dialects() -> None:
    sqlite_sql = case_expression(templates_for(Dialect.ROW_STORE), "content")
    postgres_sql = case_expression(templates_for(Dialect.DOCUMENT_RELATIONAL), "content")

    sqlite_needles = re.findall(r"instr\(content, '(.*?)'\) > 0", sqlite_sql)
    postgres_needles = re.findall(r"strpos\(content, '(.*?)'\) > 0", postgres_sql)
    assert sqlite_needles == postgres_needles == [rule.needle for rule in TOOL_RULES]
