from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
)

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"
    MATERIAL_APPROVAL = "material_approval"
    DAILY_REPORT_SUBMISSION = "daily_report_submission"
    DAILY_REPORT_APPROVAL = "daily_report_approval"
    DAILY_REPORT_REJECTION = "daily_report_rejection"
    SAFETY_ALERT = "safety_alert"
    SITE_ANNOUNCEMENT = "site_announcement"
    SYSTEM = "system"


class EmailStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class EmailPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class EmailNotificationType(str, enum.Enum):
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_UPDATE = "account_update"
    DOCUMENT_REMINDER = "document_reminder"
    SYSTEM_NOTIFICATION = "system_notification"


class Notification(Base):
    """In-app notification shown in the user's notification center."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(
        SAEnum(NotificationType, name="notification_type_enum", native_enum=False),
        nullable=False,
        default=NotificationType.INFO,
        index=True,
    )
    action_url = Column(String(512), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type}>"


class EmailLog(Base):
    __tablename__ = "email_logs"
    __table_args__ = (
        Index("ix_email_logs_status_scheduled", "status", "scheduled_at"),
        Index("ix_email_logs_recipient_created", "recipient", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    recipient = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    template_key = Column(String(128), nullable=False, index=True)
    notification_type = Column(
        SAEnum(EmailNotificationType, name="email_notification_type_enum", native_enum=False),
        nullable=False,
        default=EmailNotificationType.SYSTEM_NOTIFICATION,
        index=True,
    )
    priority = Column(
        SAEnum(EmailPriority, name="email_priority_enum", native_enum=False),
        nullable=False,
        default=EmailPriority.NORMAL,
    )
    status = Column(
        SAEnum(EmailStatus, name="email_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error = Column(Text, nullable=True)
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} recipient={self.recipient} status={self.status}>"


class EmailTemplate(Base):
    """Stored template; `content` and `subject` may use {{placeholder}} variables."""

    __tablename__ = "email_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    key = Column(String(128), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    notification_type = Column(
        SAEnum(EmailNotificationType, name="email_notification_type_enum", native_enum=False),
        nullable=False,
        default=EmailNotificationType.SYSTEM_NOTIFICATION,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
