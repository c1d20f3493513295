from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyReportStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class PhotoType(str, enum.Enum):
    BEFORE = "before"
    AFTER = "after"
    OTHER = "other"


class HeadquartersRequestStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class DailyReport(Base):
    """
    One work log per site, date and author. NPC-1000 columns carry the
    day's incoming, used and remaining quantities of the site's NPC-1000
    stock, and feed the materials NPC summary.
    """

    __tablename__ = "daily_reports"
    __table_args__ = (
        UniqueConstraint("site_id", "work_date", "created_by", name="uq_daily_reports_site_date_author"),
        Index("ix_daily_reports_site_date", "site_id", "work_date"),
        Index("ix_daily_reports_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    work_date = Column(Date, nullable=False)
    member_name = Column(String(128), nullable=True)
    process_type = Column(String(128), nullable=True)
    total_workers = Column(Integer, nullable=False, default=0)

    npc1000_incoming = Column(Float, nullable=True)
    npc1000_used = Column(Float, nullable=True)
    npc1000_remaining = Column(Float, nullable=True)

    issues = Column(Text, nullable=True)
    hq_request = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(
        SAEnum(DailyReportStatus, name="daily_report_status_enum", native_enum=False),
        nullable=False,
        default=DailyReportStatus.DRAFT,
    )
    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    workers = relationship(
        "DailyReportWorker",
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    photos = relationship(
        "DailyReportPhoto",
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DailyReportPhoto.upload_order",
    )
    site = relationship("Site", lazy="joined")


class DailyReportWorker(Base):
    __tablename__ = "daily_report_workers"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    report_id = Column(String(36), ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    worker_name = Column(String(128), nullable=False)
    labor_hours = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    report = relationship("DailyReport", back_populates="workers")


class DailyReportPhoto(Base):
    __tablename__ = "daily_report_photos"
    __table_args__ = (
        Index("ix_daily_report_photos_report_type", "report_id", "photo_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    report_id = Column(String(36), ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False)
    photo_type = Column(
        SAEnum(PhotoType, name="daily_report_photo_type_enum", native_enum=False),
        nullable=False,
        default=PhotoType.OTHER,
    )
    file_url = Column(String(1024), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    upload_order = Column(Integer, nullable=False, default=0)
    uploaded_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    report = relationship("DailyReport", back_populates="photos")


class HeadquartersRequest(Base):
    __tablename__ = "headquarters_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    daily_report_id = Column(String(36), ForeignKey("daily_reports.id", ondelete="SET NULL"), nullable=True)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(64), nullable=False, default="daily_report")
    status = Column(
        SAEnum(HeadquartersRequestStatus, name="hq_request_status_enum", native_enum=False),
        nullable=False,
        default=HeadquartersRequestStatus.PENDING,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
