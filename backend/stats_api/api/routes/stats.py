from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from stats_api.api.deps import get_executor
from stats_api.db.executor import QueryExecutor
from stats_api.schemas.stats import DailyActivity, ModelUsage, OverviewStats, ToolUsage, UserStats
from stats_api.services import stats_service

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/overview", response_model=OverviewStats)
async def overview(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> OverviewStats:
    return await stats_service.get_overview(executor)


@router.get("/models", response_model=list[ModelUsage])
async def model_usage(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> list[ModelUsage]:
    return await stats_service.get_model_usage(executor)


@router.get("/activity", response_model=list[DailyActivity])
async def activity(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
    days: Annotated[int, Query(ge=0)] = stats_service.DEFAULT_ACTIVITY_DAYS,
) -> list[DailyActivity]:
    return await stats_service.get_activity(executor, days)


@router.get("/users", response_model=list[UserStats])
async def user_leaderboard(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> list[UserStats]:
    return await stats_service.get_user_leaderboard(executor)


@router.get("/tools", response_model=list[ToolUsage])
async def tool_usage(
    executor: Annotated[QueryExecutor, Depends(get_executor)],
) -> list[ToolUsage]:
    return await stats_service.get_tool_usage(executor)
