from __future__ import annotations
from fastapi import APIRouter, Depends

from ..deps import get_app_settings, get_geofence, get_identity
from ..core.config import Settings
from ..schemas import GeofenceCheck, GeofenceRegion, LocationIn, School
from ..services.geofence import GeofenceMonitor
from ..services.identity import IdentityProvider

router = APIRouter(prefix="/geofence", tags=["geofence"])

@router.get("/schools", response_model=list[School])
async def schools(settings: Settings = Depends(get_app_settings)):
    return settings.schools

@router.get("/regions", response_model=list[GeofenceRegion])
async def regions(monitor: GeofenceMonitor = Depends(get_geofence)):
    return monitor.get_monitored_regions()

@router.post("/check", response_model=GeofenceCheck)
async def check(loc: LocationIn, monitor: GeofenceMonitor = Depends(get_geofence)):
    return monitor.check_geofence_entry(loc.latitude, loc.longitude)

# Device pushes its position; entering a school radius triggers a notification
@router.post("/location", response_model=list[GeofenceRegion])
async def location_update(
    loc: LocationIn,
    monitor: GeofenceMonitor = Depends(get_geofence),
    identity: IdentityProvider = Depends(get_identity),
):
    user = await identity.get_current_user()
    return await monitor.handle_location_update(loc.latitude, loc.longitude, user.id if user else None)
