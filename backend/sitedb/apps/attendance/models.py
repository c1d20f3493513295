"""
Attendance module.

One row per worker, site and day: check-in/check-out stamps, clock hours and
the 공수 value when a manager records it.
"""
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
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HOLIDAY = "holiday"
    SICK_LEAVE = "sick_leave"
    VACATION = "vacation"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("user_id", "site_id", "work_date", name="uq_attendance_user_site_date"),
        Index("ix_attendance_site_date", "site_id", "work_date"),
        Index("ix_attendance_user_date", "user_id", "work_date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    work_date = Column(Date, nullable=False)

    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    work_hours = Column(Float, nullable=False, default=0.0)
    overtime_hours = Column(Float, nullable=False, default=0.0)
    # 공수; None until a manager records it
    labor_hours = Column(Float, nullable=True)
    status = Column(
        SAEnum(AttendanceStatus, name="attendance_status_enum", native_enum=False),
        nullable=False,
        default=AttendanceStatus.PRESENT,
    )
    notes = Column(Text, nullable=True)

    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", foreign_keys=[user_id], lazy="joined")
    site = relationship("Site", lazy="joined")

    @property
    def worker_name(self):
        return self.user.full_name if self.user else None

    @property
    def site_name(self):
        return self.site.name if self.site else None

    def __repr__(self) -> str:
        return f"<AttendanceRecord id={self.id} user={self.user_id} date={self.work_date} status={self.status}>"
