from __future__ import annotations
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from ..schemas import (
    BestDay, BestSchool, CheckIn, CheckInStatus, DailyStats, DateRange, PeakHour, PickupStats, TopMetrics,
)
from .checkins import load_check_ins, round_half_up
from .storage import BlobStore

Clock = Callable[[], datetime]

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _mean(values: list[int]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0

def _percent(part: int, whole: int) -> int:
    return round_half_up(part / whole * 100) if whole else 0


class StatsAggregator:
    """
    KPIs recomputed from the full stored check-in history on every call. Unlike
    the board, completed records never age out here.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        on_time_threshold_minutes: int = 10,
        tz: str = "UTC",
        clock: Clock = utcnow,
    ):
        self._store = store
        self._threshold = on_time_threshold_minutes
        self._tz = ZoneInfo(tz)
        self._clock = clock

    async def get_pickup_stats(self, school_id: str | None = None, date_range: DateRange | None = None) -> PickupStats:
        filtered = self._filter(await load_check_ins(self._store), school_id)
        if date_range:
            start, end = self._local(date_range.start), self._local(date_range.end)
            filtered = [ci for ci in filtered if start <= ci.checked_in_at <= end]

        completed = [ci for ci in filtered if ci.status == CheckInStatus.COMPLETED]
        today = self._local(self._clock()).date()
        today_completed = [ci for ci in completed if self._local(ci.checked_in_at).date() == today]

        wait_times = [ci.wait_time_minutes for ci in completed if ci.wait_time_minutes is not None]

        by_school: dict[str, int] = defaultdict(int)
        by_hour: dict[str, int] = defaultdict(int)
        for ci in completed:
            by_school[ci.school_id] += 1
            hour = self._local(ci.completed_at or ci.checked_in_at).hour
            by_hour[f"{hour}:00"] += 1

        return PickupStats(
            total_pickups=len(completed),
            total_pickups_today=len(today_completed),
            on_time_pickups=sum(1 for wt in wait_times if wt <= self._threshold),
            average_wait_time=_mean(wait_times),
            fastest_pickup=min(wait_times) if wait_times else 0,
            slowest_pickup=max(wait_times) if wait_times else 0,
            pickups_by_school=dict(by_school),
            pickups_by_hour=dict(by_hour),
            completion_rate=_percent(len(completed), len(filtered)),
        )

    async def get_daily_stats(
        self, start: date | datetime, end: date | datetime, school_id: str | None = None
    ) -> list[DailyStats]:
        filtered = self._filter(await load_check_ins(self._store), school_id)

        first = self._as_date(start)
        span = (self._as_date(end) - first).days + 1
        days: dict[str, DailyStats] = {}
        for offset in range(span):
            key = (first + timedelta(days=offset)).isoformat()
            days[key] = DailyStats(date=key)

        waits: dict[str, list[int]] = defaultdict(list)
        for ci in filtered:
            key = self._local(ci.checked_in_at).date().isoformat()
            stats = days.get(key)
            if stats is None:
                continue
            stats.total_check_ins += 1
            if ci.status == CheckInStatus.COMPLETED:
                stats.completed_pickups += 1
                if ci.wait_time_minutes is not None:
                    waits[key].append(ci.wait_time_minutes)

        for key, values in waits.items():
            days[key].average_wait_time = _mean(values)
            days[key].on_time_rate = _percent(sum(1 for wt in values if wt <= self._threshold), len(values))

        return list(days.values())

    async def get_top_metrics(self, school_id: str | None = None) -> TopMetrics:
        # ties keep the first key seen (strictly-greater comparison)
        stats = await self.get_pickup_stats(school_id)

        peak = PeakHour()
        for hour, count in stats.pickups_by_hour.items():
            if count > peak.pickups:
                peak = PeakHour(hour=hour, pickups=count)

        best_school = BestSchool()
        for sid, count in stats.pickups_by_school.items():
            if count > best_school.pickups:
                best_school = BestSchool(school_id=sid, pickups=count)

        end = self._clock()
        best_day = BestDay()
        for day in await self.get_daily_stats(end - timedelta(days=7), end, school_id):
            if day.completed_pickups > best_day.pickups:
                best_day = BestDay(date=day.date, pickups=day.completed_pickups)

        return TopMetrics(best_day=best_day, peak_hour=peak, best_school=best_school)

    # helpers

    def _filter(self, items: Iterable[CheckIn], school_id: str | None) -> list[CheckIn]:
        if not school_id:
            return list(items)
        return [ci for ci in items if ci.school_id == school_id]

    def _local(self, dt: datetime) -> datetime:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(self._tz)

    def _as_date(self, value: date | datetime) -> date:
        if isinstance(value, datetime):
            return self._local(value).date()
        return value
