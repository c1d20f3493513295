from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import AttendanceStatus


class CheckInRequest(BaseModel):
    site_id: str
    notes: Optional[str] = None


class AttendanceRead(BaseModel):
    id: str
    user_id: str
    worker_name: Optional[str] = None
    site_id: str
    site_name: Optional[str] = None
    work_date: date
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    work_hours: float
    overtime_hours: float
    labor_hours: Optional[float] = None
    status: AttendanceStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AttendanceUpdate(BaseModel):
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    labor_hours: Optional[float] = None
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = None


class BulkAttendanceWorker(BaseModel):
    user_id: str
    check_in_time: time
    check_out_time: Optional[time] = None
    notes: Optional[str] = None


class BulkAttendanceCreate(BaseModel):
    site_id: str
    work_date: date
    workers: List[BulkAttendanceWorker] = Field(..., min_length=1)

    @field_validator("workers")
    @classmethod
    def check_unique_workers(cls, value):
        ids = [worker.user_id for worker in value]
        if len(ids) != len(set(ids)):
            raise ValueError("Each worker may appear only once.")
        return value


class AttendanceTotals(BaseModel):
    total_days: int = 0
    total_hours: float = 0.0
    total_overtime: float = 0.0
    days_present: int = 0
    days_absent: int = 0
    days_holiday: int = 0


class MyAttendanceResponse(BaseModel):
    items: List[AttendanceRead]
    summary: AttendanceTotals


class WorkerAttendanceSummary(AttendanceTotals):
    user_id: str
    worker_name: Optional[str] = None
    email: Optional[str] = None


class DailyAttendanceTotal(BaseModel):
    date: date
    total_workers: int
    total_hours: float


class CompanyAttendanceSummary(BaseModel):
    records: List[DailyAttendanceTotal]
    total_days: int
    total_workers: int
    total_hours: float
