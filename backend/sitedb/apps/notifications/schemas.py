from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from sitedb.apps.accounts.models import AccountRole

from .models import EmailNotificationType, EmailPriority, EmailStatus, NotificationType


class NotificationCreate(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str
    type: NotificationType = NotificationType.INFO
    action_url: Optional[str] = None


class NotificationRead(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationMarkRead(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class EmailRecipient(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class EmailNotificationCreate(BaseModel):
    recipient_email: EmailStr
    recipient_name: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=255)
    content: str
    notification_type: EmailNotificationType = EmailNotificationType.SYSTEM_NOTIFICATION
    priority: EmailPriority = EmailPriority.NORMAL
    scheduled_at: Optional[datetime] = None
    template_key: Optional[str] = None
    context: Dict[str, str] = Field(default_factory=dict)


class BulkEmailCreate(BaseModel):
    recipients: List[EmailRecipient] = Field(default_factory=list)
    role_filter: Optional[List[AccountRole]] = None
    site_filter: Optional[List[str]] = None
    subject: str = Field(..., min_length=1, max_length=255)
    content: str
    notification_type: EmailNotificationType = EmailNotificationType.SYSTEM_NOTIFICATION
    priority: EmailPriority = EmailPriority.NORMAL
    scheduled_at: Optional[datetime] = None


class BulkEmailResult(BaseModel):
    sent: int
    failed: int
    skipped: int


class EmailLogRead(BaseModel):
    id: str
    created_at: datetime
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    recipient: str
    recipient_name: Optional[str] = None
    subject: str
    content: Optional[str] = None
    template_key: str
    notification_type: EmailNotificationType
    priority: EmailPriority
    status: EmailStatus
    error: Optional[str] = None
    context_json: Optional[dict] = None
    correlation_id: Optional[str] = None
    sender_id: Optional[str] = None

    class Config:
        from_attributes = True


class EmailLogPage(BaseModel):
    items: List[EmailLogRead]
    total: int
    pages: int


class EmailTemplateUpsert(BaseModel):
    key: str = Field(..., min_length=1, max_length=128)
    name: str
    subject: str
    content: str
    notification_type: EmailNotificationType = EmailNotificationType.SYSTEM_NOTIFICATION
    is_active: bool = True


class EmailTemplateRead(EmailTemplateUpsert):
    id: Optional[str] = None
    is_default: bool = False

    class Config:
        from_attributes = True
