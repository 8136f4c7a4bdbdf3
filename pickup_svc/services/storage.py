from __future__ import annotations
import json
import logging
from typing import Any
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import StorageFailure
from ..models import BLOB_SCHEMA_VERSION, Blob

logger = logging.getLogger(__name__)

CURRENT_TOKEN_KEY = "currentPickupToken"
TOKEN_KEY = "pickupToken"
CHECKINS_KEY = "pickupCheckIns"


class BlobStore:
    """
    Named JSON documents. Every call is its own transaction; writers replace the
    whole value (last writer wins).
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_json(self, key: str) -> Any | None:
        try:
            async with self._session_maker() as db:
                row = (await db.execute(select(Blob).where(Blob.key == key))).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageFailure(f"read {key}: {e}") from e
        if row is None:
            return None
        if row.schema_version != BLOB_SCHEMA_VERSION:
            logger.warning("blob %s has schema_version=%s, expected %s", key, row.schema_version, BLOB_SCHEMA_VERSION)
        try:
            return json.loads(row.value)
        except json.JSONDecodeError as e:
            raise StorageFailure(f"decode {key}: {e}") from e

    async def set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value)
            async with self._session_maker() as db:
                row = (await db.execute(select(Blob).where(Blob.key == key))).scalar_one_or_none()
                if row is None:
                    db.add(Blob(key=key, value=raw, schema_version=BLOB_SCHEMA_VERSION))
                else:
                    row.value = raw
                    row.schema_version = BLOB_SCHEMA_VERSION
                await db.commit()
        except (SQLAlchemyError, TypeError) as e:
            raise StorageFailure(f"write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            async with self._session_maker() as db:
                await db.execute(delete(Blob).where(Blob.key == key))
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageFailure(f"delete {key}: {e}") from e
