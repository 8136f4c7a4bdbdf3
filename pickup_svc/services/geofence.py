from __future__ import annotations
import logging
import math
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..schemas import GeofenceCheck, GeofenceRegion, LocationIn, School
from . import notifications
from .notifications import NotificationSink

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371e3
GEOFENCE_JOB_ID = "geofence-poll"

LocationSource = Callable[[], Awaitable[LocationIn | None]]


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres (haversine)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class GeofenceMonitor:
    def __init__(
        self,
        schools: list[School],
        notifier: NotificationSink,
        *,
        scheduler: AsyncIOScheduler | None = None,
        location_source: LocationSource | None = None,
        poll_seconds: int = 30,
    ):
        self._schools = schools
        self._notifier = notifier
        self._scheduler = scheduler
        self._location_source = location_source
        self._poll_seconds = poll_seconds
        self._regions: list[GeofenceRegion] = []
        self._monitoring = False
        # user key -> region ids the user is currently inside
        self._inside: dict[str, set[str]] = {}

    def check_geofence_entry(self, latitude: float, longitude: float) -> GeofenceCheck:
        for school in self._schools:
            distance = calculate_distance(latitude, longitude, school.geofence.latitude, school.geofence.longitude)
            if distance <= school.geofence.radius:
                return GeofenceCheck(is_inside=True, school=school, distance=distance)
        return GeofenceCheck(is_inside=False)

    async def start_monitoring(self, regions: list[GeofenceRegion]) -> bool:
        self._regions = list(regions)
        self._inside.clear()
        if self._location_source is not None and self._scheduler is not None:
            self._scheduler.add_job(
                self.poll_once, "interval", seconds=self._poll_seconds,
                id=GEOFENCE_JOB_ID, replace_existing=True, max_instances=1, coalesce=True,
            )
        self._monitoring = True
        logger.info("geofence monitoring started for %d region(s)", len(self._regions))
        return True

    async def stop_monitoring(self) -> None:
        if self._scheduler is not None and self._scheduler.get_job(GEOFENCE_JOB_ID) is not None:
            self._scheduler.remove_job(GEOFENCE_JOB_ID)
        self._monitoring = False
        logger.info("geofence monitoring stopped")

    def is_monitoring_active(self) -> bool:
        return self._monitoring

    def get_monitored_regions(self) -> list[GeofenceRegion]:
        return list(self._regions)

    async def poll_once(self) -> list[GeofenceRegion]:
        if self._location_source is None:
            return []
        try:
            loc = await self._location_source()
        except Exception:
            logger.warning("location source failed", exc_info=True)
            return []
        if loc is None:
            return []
        return await self.handle_location_update(loc.latitude, loc.longitude)

    async def handle_location_update(
        self, latitude: float, longitude: float, user_id: str | None = None
    ) -> list[GeofenceRegion]:
        """Notify for each region entered by this update. Returns the newly entered regions."""
        key = user_id or ""
        inside = self._inside.setdefault(key, set())
        entered: list[GeofenceRegion] = []
        for region in self._regions:
            distance = calculate_distance(latitude, longitude, region.latitude, region.longitude)
            if distance <= region.radius:
                if region.id not in inside:
                    inside.add(region.id)
                    entered.append(region)
            else:
                inside.discard(region.id)

        for region in entered:
            logger.info("entered geofence %s (user=%s)", region.name, user_id)
            await notifications.deliver(
                self._notifier, notifications.geofence_entry(region.name, region.id, user_id)
            )
        return entered
