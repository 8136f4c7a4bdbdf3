from __future__ import annotations
import asyncio
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
from pydantic import ValidationError

from ..core.errors import InvalidStatusTransition, StorageFailure
from ..schemas import CheckIn, CheckInStatus, School
from . import notifications
from .identity import UserDirectory
from .notifications import NotificationSink
from .storage import CHECKINS_KEY, BlobStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_STATUS_ORDER = {
    CheckInStatus.WAITING: 0,
    CheckInStatus.PROCESSING: 1,
    CheckInStatus.COMPLETED: 2,
}

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))

def wait_minutes(checked_in_at: datetime, completed_at: datetime) -> int:
    return round_half_up((completed_at - checked_in_at).total_seconds() / 60)


async def load_check_ins(store: BlobStore) -> list[CheckIn]:
    """Full stored history. Storage or decode trouble reads as an empty collection."""
    try:
        raw = await store.get_json(CHECKINS_KEY)
    except StorageFailure:
        logger.exception("load check-ins failed")
        return []
    return _parse_check_ins(raw)

def _parse_check_ins(raw) -> list[CheckIn]:
    if not raw:
        return []
    out: list[CheckIn] = []
    for item in raw:
        try:
            out.append(CheckIn.model_validate(item))
        except ValidationError:
            logger.warning("dropping malformed check-in record: %r", item)
    return out


class CheckInLedger:
    """
    Live pickup queue plus its history. The collection is cached in process and
    written back whole after every mutation.
    """

    def __init__(
        self,
        store: BlobStore,
        directory: UserDirectory,
        notifier: NotificationSink,
        *,
        schools: list[School] | None = None,
        retention_minutes: int = 60,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._directory = directory
        self._notifier = notifier
        self._school_names = {s.id: s.name for s in (schools or [])}
        self._retention = timedelta(minutes=retention_minutes)
        self._clock = clock
        self._check_ins: list[CheckIn] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    async def register_check_in(
        self, user_id: str, student_id: str, school_id: str, token_id: str | None = None
    ) -> CheckIn:
        async with self._lock:
            await self._ensure_loaded()
            existing = next(
                (ci for ci in self._check_ins
                 if ci.user_id == user_id and ci.student_id == student_id and ci.status != CheckInStatus.COMPLETED),
                None,
            )
            if existing:
                # re-scan: move to the back of the queue instead of duplicating
                existing.checked_in_at = self._clock()
                existing.status = CheckInStatus.WAITING
                await self._save()
                return existing

            parent_name, student_name, student_grade = await self._fetch_display_names(user_id, student_id)
            check_in = CheckIn(
                id=f"checkin-{uuid.uuid4().hex[:16]}",
                user_id=user_id,
                student_id=student_id,
                school_id=school_id,
                parent_name=parent_name,
                student_name=student_name,
                student_grade=student_grade,
                checked_in_at=self._clock(),
                status=CheckInStatus.WAITING,
                token_id=token_id,
            )
            self._check_ins.append(check_in)
            await self._save()
            logger.info("check-in %s registered user=%s student=%s school=%s", check_in.id, user_id, student_id, school_id)
            return check_in

    async def get_check_ins(self, school_id: str | None = None) -> list[CheckIn]:
        async with self._lock:
            await self._load()
            items = list(self._check_ins)

        if school_id:
            items = [ci for ci in items if ci.school_id == school_id]
        cutoff = self._clock() - self._retention
        items = [ci for ci in items if ci.status != CheckInStatus.COMPLETED or ci.checked_in_at > cutoff]
        return sorted(items, key=lambda ci: ci.checked_in_at)

    async def get_check_in_count(self, school_id: str | None = None) -> int:
        async with self._lock:
            await self._ensure_loaded()
            return sum(
                1 for ci in self._check_ins
                if ci.status != CheckInStatus.COMPLETED and (not school_id or ci.school_id == school_id)
            )

    async def update_check_in_status(self, check_in_id: str, status: CheckInStatus) -> CheckIn | None:
        async with self._lock:
            await self._ensure_loaded()
            check_in = next((ci for ci in self._check_ins if ci.id == check_in_id), None)
            if check_in is None:
                return None

            previous = check_in.status
            if _STATUS_ORDER[status] < _STATUS_ORDER[previous]:
                raise InvalidStatusTransition(previous.value, status.value)

            check_in.status = status
            if status == CheckInStatus.COMPLETED and check_in.completed_at is None:
                check_in.completed_at = self._clock()
                check_in.wait_time_minutes = wait_minutes(check_in.checked_in_at, check_in.completed_at)
            await self._save()

        if status == CheckInStatus.COMPLETED and previous != CheckInStatus.COMPLETED:
            await self._send_pickup_notifications(check_in)
        return check_in

    async def remove_check_in(self, check_in_id: str) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            before = len(self._check_ins)
            self._check_ins = [ci for ci in self._check_ins if ci.id != check_in_id]
            await self._save()
            return len(self._check_ins) < before

    async def clear_all_check_ins(self) -> None:
        async with self._lock:
            self._check_ins = []
            self._loaded = True
            await self._save()
        logger.info("all check-ins cleared")

    # helpers

    async def _send_pickup_notifications(self, check_in: CheckIn) -> None:
        school_name = self._school_names.get(check_in.school_id, check_in.school_id)
        pickup_time = check_in.completed_at or self._clock()
        await notifications.deliver(
            self._notifier,
            notifications.pickup_confirmation(check_in.student_name, school_name, pickup_time, check_in.user_id),
        )
        await notifications.deliver(
            self._notifier,
            notifications.pickup_school_notice(
                check_in.parent_name, check_in.student_name, check_in.student_grade,
                school_name, pickup_time, check_in.school_id,
            ),
        )

    async def _fetch_display_names(self, user_id: str, student_id: str) -> tuple[str, str, str]:
        try:
            profile = await self._directory.get_profile(user_id)
        except (httpx.HTTPError, ValidationError):
            logger.warning("profile lookup failed for %s", user_id, exc_info=True)
            return "Unknown Parent", "Unknown Student", "Unknown"
        student = profile.student(student_id) if profile else None
        if profile and student:
            return profile.name, student.name, student.grade
        return "Parent Name", "Student Name", "Grade Unknown"

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self._load()

    async def _load(self) -> None:
        try:
            raw = await self._store.get_json(CHECKINS_KEY)
        except StorageFailure:
            # cache stays as is
            logger.exception("load check-ins failed")
            return
        self._check_ins = _parse_check_ins(raw)
        self._loaded = True

    async def _save(self) -> None:
        try:
            await self._store.set_json(CHECKINS_KEY, [ci.to_json_dict() for ci in self._check_ins])
        except StorageFailure:
            logger.exception("save check-ins failed")
