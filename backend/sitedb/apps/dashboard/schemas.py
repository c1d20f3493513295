from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel


class AdminDashboard(BaseModel):
    active_sites: int
    active_users_by_role: Dict[str, int]
    pending_material_requests: int
    reports_awaiting_approval: int
    low_stock_items: int
    out_of_stock_items: int
    todays_reports: int
    unread_notifications: int
    active_security_threats: int


class RecentReport(BaseModel):
    id: str
    work_date: date
    status: str
    total_workers: int
    member_name: Optional[str] = None
    process_type: Optional[str] = None


class OpenRequest(BaseModel):
    id: str
    request_number: str
    status: str
    priority: str
    request_date: date


class AssignedWorker(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    role: str


class SiteDashboard(BaseModel):
    site_id: str
    site_name: str
    site_status: str
    inventory_status: Dict[str, int]
    recent_reports: List[RecentReport]
    open_requests: List[OpenRequest]
    assigned_workers: List[AssignedWorker]
