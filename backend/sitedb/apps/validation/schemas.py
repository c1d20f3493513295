from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class PhoneNumberCheck(BaseModel):
    phone_number: str


class BusinessNumberCheck(BaseModel):
    number: str
    check_checksum: bool = False


class DatetimeCheck(BaseModel):
    value: str


class LaborHoursCheck(BaseModel):
    labor_hours: float


class ScheduleEntry(BaseModel):
    worker_id: str
    site_id: str
    date: str
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")


class WorkerScheduleCheck(BaseModel):
    schedule: ScheduleEntry
    existing_schedules: List[ScheduleEntry] = []


class SiteLocationCheck(BaseModel):
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class DocumentMetadataCheck(BaseModel):
    title: str
    description: Optional[str] = None
    file_type: str
    file_size: int = Field(..., ge=0)


class PermissionCheck(BaseModel):
    resource: str
    action: str
    site_id: Optional[str] = None
