from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import DailyReportStatus, HeadquartersRequestStatus, PhotoType


class WorkerDetail(BaseModel):
    worker_name: str = ""
    labor_hours: float = 0.0
    worker_id: Optional[str] = None


class DailyReportBase(BaseModel):
    member_name: Optional[str] = None
    process_type: Optional[str] = None
    total_workers: Optional[int] = Field(None, ge=0)
    npc1000_incoming: Optional[float] = Field(None, ge=0)
    npc1000_used: Optional[float] = Field(None, ge=0)
    npc1000_remaining: Optional[float] = Field(None, ge=0)
    issues: Optional[str] = None
    hq_request: Optional[str] = None
    notes: Optional[str] = None


class DailyReportCreate(DailyReportBase):
    site_id: str
    work_date: date
    worker_details: Optional[List[WorkerDetail]] = None


class DailyReportUpdate(DailyReportBase):
    worker_details: Optional[List[WorkerDetail]] = None


class DailyReportDecision(BaseModel):
    approve: bool
    comments: Optional[str] = None


class DailyReportWorkerRead(BaseModel):
    id: str
    worker_id: Optional[str] = None
    worker_name: str
    labor_hours: float

    class Config:
        from_attributes = True


class DailyReportPhotoRead(BaseModel):
    id: str
    report_id: str
    photo_type: PhotoType
    file_url: str
    file_name: str
    file_size: Optional[int] = None
    upload_order: int
    uploaded_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DailyReportRead(DailyReportBase):
    id: str
    site_id: str
    work_date: date
    total_workers: int
    status: DailyReportStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    workers: List[DailyReportWorkerRead] = Field(default_factory=list)
    photos: List[DailyReportPhotoRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class HeadquartersRequestRead(BaseModel):
    id: str
    user_id: Optional[str] = None
    site_id: str
    daily_report_id: Optional[str] = None
    subject: str
    content: str
    category: str
    status: HeadquartersRequestStatus
    created_at: datetime

    class Config:
        from_attributes = True
