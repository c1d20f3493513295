from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Index, String, Text

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataExport(Base):
    """One row per export download; the monitor flags unusually large ones."""

    __tablename__ = "data_exports"
    __table_args__ = (
        Index("ix_data_exports_started", "started_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    export_type = Column(String(64), nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class BlockedIP(Base):
    __tablename__ = "blocked_ips"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    ip_address = Column(String(64), nullable=False, unique=True, index=True)
    reason = Column(Text, nullable=True)
    blocked_by = Column(String(64), nullable=True)
    blocked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
