from __future__ import annotations
from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException

from ..core.config import Settings
from ..deps import get_app_settings, get_stats, require_staff
from ..schemas import DailyStats, DateRange, PickupStats, TopMetrics
from ..services.stats import StatsAggregator

router = APIRouter(prefix="/stats", tags=["stats"], dependencies=[Depends(require_staff)])

@router.get("/pickups", response_model=PickupStats)
async def pickup_stats(
    school_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    stats: StatsAggregator = Depends(get_stats),
):
    date_range = None
    if start is not None or end is not None:
        if start is None or end is None:
            raise HTTPException(status_code=422, detail="start and end must be given together")
        date_range = DateRange(start=start, end=end)
    return await stats.get_pickup_stats(school_id, date_range)

@router.get("/daily", response_model=list[DailyStats])
async def daily_stats(
    start: date,
    end: date,
    school_id: str | None = None,
    stats: StatsAggregator = Depends(get_stats),
    settings: Settings = Depends(get_app_settings),
):
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")
    if (end - start).days + 1 > settings.stats_max_days:
        raise HTTPException(status_code=422, detail=f"range is limited to {settings.stats_max_days} days")
    return await stats.get_daily_stats(start, end, school_id)

@router.get("/top", response_model=TopMetrics)
async def top_metrics(school_id: str | None = None, stats: StatsAggregator = Depends(get_stats)):
    return await stats.get_top_metrics(school_id)
