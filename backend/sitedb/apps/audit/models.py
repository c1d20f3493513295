from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, Index, JSON, String, Text, desc

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivitySeverity(str, enum.Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ActivityLog(Base):
    """
    Append-only activity trail.

    Holds business actions (material approvals, report submissions), login
    attempts (action LOGIN, details.success) and security alerts
    (entity_type security_alert). The security monitor polls this table.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        Index("ix_activity_logs_action_time", "action", "created_at"),
        Index("ix_activity_logs_ip_time", "ip_address", "created_at"),
        Index("ix_activity_logs_time_desc", desc("created_at")),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    # No FK: login failures for unknown accounts and system alerts have no user row.
    user_id = Column(String(36), nullable=True, index=True)
    user_email = Column(String(255), nullable=True, index=True)
    entity_type = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(128), nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    severity = Column(
        SAEnum(ActivitySeverity, name="activity_severity_enum", native_enum=False),
        nullable=False,
        default=ActivitySeverity.INFO,
        index=True,
    )
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} entity={self.entity_type}:{self.entity_id} action={self.action}>"
