"""SERP monitor and change log models."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from citewatch.db.types import JSONType, UTCDateTime
from citewatch.models.base import Base


class Monitor(Base):
    """A standing subscription to citation changes for one query/domain."""

    __tablename__ = "serp_monitors"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    query: Mapped[str] = mapped_column(String(500), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    engines: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    change_types: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    alert_threshold: Mapped[str] = mapped_column(
        String(16), nullable=False, default="immediate"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # engine -> serialized Snapshot; one linear history per (monitor, engine)
    last_snapshots: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_serp_monitors_user_active", "user_id", "is_active"),
    )


class ChangeLog(Base):
    """Append-only record of a detected change."""

    __tablename__ = "serp_change_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    monitor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("serp_monitors.id", ondelete="CASCADE"), nullable=False
    )
    engine: Mapped[str | None] = mapped_column(String(16), nullable=True)
    change_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    old_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    impact: Mapped[str] = mapped_column(Text, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_serp_change_logs_monitor_detected", "monitor_id", "detected_at"),
    )
