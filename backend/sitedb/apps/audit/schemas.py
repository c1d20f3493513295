from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .models import ActivitySeverity


class ActivityLogCreate(BaseModel):
    entity_type: str
    entity_id: Optional[str] = None
    action: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    details: Optional[dict] = None
    severity: ActivitySeverity = ActivitySeverity.INFO
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None


class ActivityLogRead(BaseModel):
    id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    entity_type: str
    entity_id: Optional[str] = None
    action: str
    details: Optional[dict] = None
    severity: ActivitySeverity
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
