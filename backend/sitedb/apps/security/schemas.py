from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .monitor import SecurityEventType, ThreatLevel


class SecurityMetricsRead(BaseModel):
    failed_logins_last_hour: int
    failed_logins_last_24h: int
    suspicious_ips: int
    active_threats: int
    resolved_threats_today: int
    avg_threat_resolution_time: float

    class Config:
        from_attributes = True


class SecurityAlertRead(BaseModel):
    id: str
    event_type: SecurityEventType
    threat_level: ThreatLevel
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: dict = {}
    created_at: datetime
    resolved: bool

    class Config:
        from_attributes = True


class BlockIPRequest(BaseModel):
    ip_address: str = Field(..., min_length=3, max_length=64)
    reason: str = Field(..., min_length=1)
    # None blocks until manually lifted.
    duration_minutes: Optional[int] = Field(60, ge=1)


class BlockedIPRead(BaseModel):
    id: str
    ip_address: str
    reason: Optional[str] = None
    blocked_by: Optional[str] = None
    blocked_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True


class SecurityCheckResult(BaseModel):
    alerts_raised: int
    alerts_handled: int
