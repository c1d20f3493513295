from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from sitedb.apps.accounts.models import AccountRole

from .models import SiteAssignmentRole, SiteStatus


class SiteBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=512)
    description: Optional[str] = None
    status: SiteStatus = SiteStatus.ACTIVE
    start_date: date
    end_date: Optional[date] = None
    manager_name: Optional[str] = None
    manager_phone: Optional[str] = None
    safety_manager_name: Optional[str] = None
    safety_manager_phone: Optional[str] = None
    accommodation_name: Optional[str] = None
    accommodation_address: Optional[str] = None
    organization_id: Optional[str] = None


class SiteCreate(SiteBase):
    pass


class SiteUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    status: Optional[SiteStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    manager_name: Optional[str] = None
    manager_phone: Optional[str] = None
    safety_manager_name: Optional[str] = None
    safety_manager_phone: Optional[str] = None
    accommodation_name: Optional[str] = None
    accommodation_address: Optional[str] = None
    organization_id: Optional[str] = None


class SiteRead(SiteBase):
    id: str
    is_deleted: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SiteListResponse(BaseModel):
    items: List[SiteRead]
    total: int
    pages: int


class SiteIds(BaseModel):
    site_ids: List[str] = Field(..., min_length=1)


class SiteStatusUpdate(SiteIds):
    status: SiteStatus


class SiteAssignmentCreate(BaseModel):
    user_id: str
    role: SiteAssignmentRole = SiteAssignmentRole.WORKER


class SiteAssignmentRoleUpdate(BaseModel):
    role: SiteAssignmentRole


class SiteAssignmentRead(BaseModel):
    id: str
    site_id: str
    user_id: str
    role: SiteAssignmentRole
    assigned_date: date
    unassigned_date: Optional[date] = None
    is_active: bool
    user_full_name: Optional[str] = None
    user_email: Optional[str] = None

    class Config:
        from_attributes = True


class AvailableUser(BaseModel):
    id: str
    full_name: str
    email: str
    role: AccountRole

    class Config:
        from_attributes = True
