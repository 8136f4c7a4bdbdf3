from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pickup_svc.db import init_db
from pickup_svc.services.notifications import NotificationSink
from pickup_svc.services.storage import BlobStore

T0 = datetime(2025, 3, 10, 14, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSink(NotificationSink):
    def __init__(self):
        self.sent: list[Dict[str, Any]] = []

    async def send(self, title, body, data=None):
        self.sent.append({"title": title, "body": body, "data": data or {}})


class FailingSink(NotificationSink):
    def __init__(self):
        self.attempts = 0

    async def send(self, title, body, data=None):
        self.attempts += 1
        raise ConnectionError("push gateway down")


async def make_store():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    return BlobStore(async_sessionmaker(engine, expire_on_commit=False)), engine
