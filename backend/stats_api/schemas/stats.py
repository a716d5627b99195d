from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class OverviewStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_users: int = 0
    total_chats: int = 0
    active_users: int = 0
    total_models: int = 0
    estimated_tokens: int = 0
    tool_usage: int = 0


class ModelUsage(BaseModel):
    model: str
    usage_count: int
    total_chars: int
    estimated_tokens: int


class DailyActivity(BaseModel):
    date: str
    chat_count: int
    unique_users: int


class UserStats(BaseModel):
    id: str
    name: str | None = None
    role: str | None = None
    chat_count: int = 0
    last_activity: int | None = None
    estimated_tokens: int = 0


class ToolUsage(BaseModel):
    tool_name: str
    usage_count: int
    unique_users: int
    unique_chats: int
    tool_type: Literal["builtin", "custom"]
