from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # wire + stored blobs use camelCase; python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- identity ---

class StudentInfo(CamelModel):
    id: str
    name: str
    grade: str
    school_id: str

class VehicleInfo(CamelModel):
    make: str
    model: str
    color: str
    license_plate: str

class UserProfile(CamelModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    students: List[StudentInfo] = Field(default_factory=list)
    vehicle: Optional[VehicleInfo] = None

    def student(self, student_id: str) -> Optional[StudentInfo]:
        for s in self.students:
            if s.id == student_id:
                return s
        return None


# --- schools / geofences ---

class GeofenceArea(CamelModel):
    latitude: float
    longitude: float
    radius: float  # metres

class PickupWindow(CamelModel):
    start: str  # "HH:MM"
    end: str
    label: str = ""

class School(CamelModel):
    id: str
    name: str
    address: str = ""
    geofence: GeofenceArea
    pickup_times: List[PickupWindow] = Field(default_factory=list)

class GeofenceRegion(CamelModel):
    id: str
    name: str
    latitude: float
    longitude: float
    radius: float

    @classmethod
    def from_school(cls, school: School) -> "GeofenceRegion":
        return cls(
            id=school.id,
            name=school.name,
            latitude=school.geofence.latitude,
            longitude=school.geofence.longitude,
            radius=school.geofence.radius,
        )

class LocationIn(CamelModel):
    latitude: float
    longitude: float

class GeofenceCheck(CamelModel):
    is_inside: bool
    school: Optional[School] = None
    distance: Optional[float] = None


# --- pickup tokens ---

class TokenPayload(CamelModel):
    """Exact field set carried inside the QR credential."""
    user_id: str
    student_id: str
    school_id: str
    timestamp: str  # ISO-8601, e.g. 2025-01-01T14:30:00.000Z
    auth_token: str
    version: str

class PickupToken(CamelModel):
    id: str
    user_id: str
    student_id: str
    school_id: str
    generated_at: datetime
    expires_at: datetime
    is_used: bool = False
    qr_code_data: str

class ScannedStudentInfo(CamelModel):
    student_id: str
    user_id: str
    school_id: str
    timestamp: str
    version: str

class ValidationResult(CamelModel):
    valid: bool
    student_info: Optional[ScannedStudentInfo] = None
    error: Optional[str] = None

class TokenCreate(CamelModel):
    student_id: str
    school_id: str

class ScanIn(CamelModel):
    data: str  # raw base64 payload or full deep link


# --- check-ins ---

class CheckInStatus(str, Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"

class CheckIn(CamelModel):
    id: str
    user_id: str
    student_id: str
    school_id: str
    parent_name: str
    student_name: str
    student_grade: str
    checked_in_at: datetime
    completed_at: Optional[datetime] = None
    status: CheckInStatus = CheckInStatus.WAITING
    token_id: Optional[str] = None
    wait_time_minutes: Optional[int] = None

class StatusUpdate(CamelModel):
    status: CheckInStatus

class CheckInCount(CamelModel):
    school_id: Optional[str] = None
    count: int

class ScanResult(ValidationResult):
    check_in: Optional[CheckIn] = None
    token_generated_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None


# --- stats ---

class PickupStats(CamelModel):
    total_pickups: int = 0
    total_pickups_today: int = 0
    on_time_pickups: int = 0
    average_wait_time: int = 0  # minutes
    fastest_pickup: int = 0
    slowest_pickup: int = 0
    pickups_by_school: Dict[str, int] = Field(default_factory=dict)
    pickups_by_hour: Dict[str, int] = Field(default_factory=dict)
    completion_rate: int = 0  # percent

class DailyStats(CamelModel):
    date: str  # YYYY-MM-DD
    total_check_ins: int = 0
    completed_pickups: int = 0
    average_wait_time: int = 0
    on_time_rate: int = 0

class DateRange(CamelModel):
    start: datetime
    end: datetime

class BestDay(CamelModel):
    date: str = "N/A"
    pickups: int = 0

class PeakHour(CamelModel):
    hour: str = "N/A"
    pickups: int = 0

class BestSchool(CamelModel):
    school_id: str = "N/A"
    pickups: int = 0

class TopMetrics(CamelModel):
    best_day: BestDay
    peak_hour: PeakHour
    best_school: BestSchool


# --- notifications ---

class Notification(CamelModel):
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)
