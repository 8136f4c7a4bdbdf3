from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import Integer, String, Text
from sqlalchemy.types import DateTime

Base = declarative_base()

BLOB_SCHEMA_VERSION = 1

def utcnow():
    return datetime.now(timezone.utc)

# Key -> JSON document. Holds the current pickup token per user, token history
# and the full check-in collection.
class Blob(Base):
    __tablename__ = "blobs"
    key: Mapped[str] = mapped_column(String(191), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    schema_version: Mapped[int] = mapped_column(Integer, default=BLOB_SCHEMA_VERSION, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
