"""
Shared model base
Timestamp base class and UTC helpers used by every table
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Timezone-aware now(), replaces the deprecated utcnow()"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TimestampModel(SQLModel):
    """Timestamp base class, gives every model created_at and updated_at"""
    created_at: Optional[datetime] = Field(
        default_factory=utc_now,
        nullable=False
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utc_now,
        nullable=False,
        sa_column_kwargs={"onupdate": utc_now}
    )
