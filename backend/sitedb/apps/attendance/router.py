from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import get_current_active_user, is_admin, is_restricted
from sitedb.apps.accounts.models import User

from . import schemas, services

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/check-in", response_model=schemas.AttendanceRead, status_code=status.HTTP_201_CREATED)
def check_in(
    payload: schemas.CheckInRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    record = services.check_in(db, user=current_user, payload=payload)
    db.commit()
    db.refresh(record)
    return record


@router.post("/{attendance_id}/check-out", response_model=schemas.AttendanceRead)
def check_out(
    attendance_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    record = services.check_out(db, user=current_user, attendance_id=attendance_id)
    db.commit()
    db.refresh(record)
    return record


@router.get("/today", response_model=List[schemas.AttendanceRead])
def today(
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_today_attendance(db, user=current_user, site_id=site_id)


@router.get("/me", response_model=schemas.MyAttendanceResponse)
def my_attendance(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    records, summary = services.get_my_attendance(
        db, user=current_user, start_date=start_date, end_date=end_date, site_id=site_id
    )
    return {"items": records, "summary": summary}


@router.get("/me/monthly", response_model=List[schemas.AttendanceRead])
def my_monthly_attendance(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_monthly_attendance(db, user=current_user, year=year, month=month)


@router.get("/records", response_model=List[schemas.AttendanceRead])
def list_records(
    date_from: date,
    date_to: date,
    user_id: Optional[str] = None,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_attendance_records(
        db, user=current_user, date_from=date_from, date_to=date_to, user_id=user_id, site_id=site_id
    )


@router.get("/summary", response_model=List[schemas.WorkerAttendanceSummary])
def summary(
    start_date: date,
    end_date: date,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_attendance_summary(
        db, user=current_user, start_date=start_date, end_date=end_date, site_id=site_id
    )


@router.get("/company-summary", response_model=schemas.CompanyAttendanceSummary)
def company_summary(
    organization_id: str,
    date_from: date,
    date_to: date,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    allowed = is_admin(current_user) or (
        is_restricted(current_user) and current_user.organization_id == organization_id
    )
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this organization.")
    return services.get_company_attendance_summary(
        db, organization_id=organization_id, date_from=date_from, date_to=date_to, site_id=site_id
    )


@router.post("/bulk", response_model=List[schemas.AttendanceRead], status_code=status.HTTP_201_CREATED)
def add_bulk(
    payload: schemas.BulkAttendanceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    records = services.add_bulk_attendance(db, user=current_user, payload=payload)
    db.commit()
    return records


@router.patch("/{attendance_id}", response_model=schemas.AttendanceRead)
def update_record(
    attendance_id: str,
    payload: schemas.AttendanceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    record = services.update_attendance_record(
        db, user=current_user, attendance_id=attendance_id, payload=payload
    )
    db.commit()
    db.refresh(record)
    return record
