"""SQLModel table definitions for the key-value data layer."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, LargeBinary, String
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class KeyValueTable(SQLModel, table=True):
    """One serialized collection per key."""

    __tablename__ = "kv_store"

    key: str = Field(sa_column=Column(String(255), primary_key=True))
    value: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
