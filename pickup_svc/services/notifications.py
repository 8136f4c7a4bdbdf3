from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from ..core.nats import publish_json
from ..core.qr import format_timestamp
from ..schemas import Notification

logger = logging.getLogger(__name__)


class NotificationSink:
    """Fire-and-forget "send a message now". Delivery is never confirmed."""

    async def send(self, title: str, body: str, data: Dict[str, Any] | None = None) -> None:
        raise NotImplementedError

class NatsNotificationSink(NotificationSink):
    def __init__(self, subject: str):
        self._subject = subject

    async def send(self, title: str, body: str, data: Dict[str, Any] | None = None) -> None:
        evt = Notification(title=title, body=body, data=data or {}).to_json_dict()
        evt["sentAt"] = format_timestamp(datetime.now(timezone.utc))
        await publish_json(self._subject, evt)

class LogNotificationSink(NotificationSink):
    """Used when NATS publishing is switched off."""

    async def send(self, title: str, body: str, data: Dict[str, Any] | None = None) -> None:
        logger.info("notification: %s | %s | %s", title, body, data or {})


# --- message builders ---

def geofence_entry(school_name: str, school_id: str, user_id: str | None = None) -> Notification:
    data: Dict[str, Any] = {"schoolId": school_id, "type": "geofence_entry"}
    if user_id:
        data["userId"] = user_id
    return Notification(
        title="🎒 Approaching School Pickup",
        body=f"You're near {school_name}. Tap to show your pickup code.",
        data=data,
    )

def pickup_confirmation(student_name: str, school_name: str, pickup_time: datetime, user_id: str) -> Notification:
    return Notification(
        title="✅ Pickup Confirmed",
        body=f"{student_name} has been successfully picked up from {school_name} at {pickup_time:%H:%M:%S}",
        data={
            "type": "pickup_confirmation",
            "userId": user_id,
            "studentName": student_name,
            "schoolName": school_name,
            "pickupTime": format_timestamp(pickup_time),
        },
    )

def pickup_school_notice(
    parent_name: str, student_name: str, student_grade: str, school_name: str, pickup_time: datetime, school_id: str
) -> Notification:
    return Notification(
        title="📋 Pickup Completed",
        body=f"{parent_name} picked up {student_name} ({student_grade}) from {school_name}",
        data={
            "type": "pickup_school_notification",
            "schoolId": school_id,
            "parentName": parent_name,
            "studentName": student_name,
            "studentGrade": student_grade,
            "schoolName": school_name,
            "pickupTime": format_timestamp(pickup_time),
        },
    )

async def deliver(sink: NotificationSink, note: Notification) -> bool:
    """Send and swallow failures; a lost notification must not fail the caller."""
    try:
        await sink.send(note.title, note.body, note.data)
        return True
    except Exception:
        logger.exception("notification dispatch failed: %s", note.title)
        return False
