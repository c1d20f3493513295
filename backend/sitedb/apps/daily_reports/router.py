from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import get_current_active_user, require_admin, require_roles
from sitedb.apps.accounts.models import AccountRole, User
from sitedb.apps.documents import storage

from . import models, schemas, services

router = APIRouter(prefix="/daily-reports", tags=["daily_reports"])


@router.get("", response_model=List[schemas.DailyReportRead])
def list_reports(
    site_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[models.DailyReportStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_daily_reports(
        db,
        user=current_user,
        site_id=site_id,
        start_date=start_date,
        end_date=end_date,
        status_filter=status,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=schemas.DailyReportRead, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: schemas.DailyReportCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    report = services.create_daily_report(db, payload=payload, user=current_user)
    db.commit()
    db.refresh(report)
    return report


@router.get("/headquarters-requests", response_model=List[schemas.HeadquartersRequestRead])
def list_headquarters_requests(
    site_id: Optional[str] = None,
    status: Optional[models.HeadquartersRequestStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_headquarters_requests(
        db, site_id=site_id, status_filter=status, limit=limit, offset=offset
    )


@router.delete("/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_photo(
    photo_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    key = services.delete_additional_photo(db, photo_id=photo_id, user=current_user)
    db.commit()
    storage.delete_file(key)


@router.get("/{report_id}", response_model=schemas.DailyReportRead)
def get_report(
    report_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_visible_report(db, report_id=report_id, user=current_user)


@router.put("/{report_id}", response_model=schemas.DailyReportRead)
def update_report(
    report_id: str,
    payload: schemas.DailyReportUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    report = services.update_daily_report(db, report_id=report_id, payload=payload, user=current_user)
    db.commit()
    db.refresh(report)
    return report


@router.post("/{report_id}/submit", response_model=schemas.DailyReportRead)
def submit_report(
    report_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    report = services.submit_daily_report(db, report_id=report_id, user=current_user)
    db.commit()
    db.refresh(report)
    return report


@router.post("/{report_id}/decision", response_model=schemas.DailyReportRead)
def decide_report(
    report_id: str,
    payload: schemas.DailyReportDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(AccountRole.SITE_MANAGER, AccountRole.ADMIN)),
):
    report = services.approve_daily_report(
        db,
        report_id=report_id,
        approve=payload.approve,
        comments=payload.comments,
        user=current_user,
    )
    db.commit()
    db.refresh(report)
    return report


@router.get("/{report_id}/photos", response_model=List[schemas.DailyReportPhotoRead])
def list_photos(
    report_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_additional_photos(db, report_id=report_id, user=current_user)


@router.post(
    "/{report_id}/photos",
    response_model=List[schemas.DailyReportPhotoRead],
    status_code=status.HTTP_201_CREATED,
)
def upload_photos(
    report_id: str,
    files: List[UploadFile] = File(...),
    photo_type: models.PhotoType = Form(models.PhotoType.OTHER),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    photos = services.upload_additional_photos(
        db, report_id=report_id, files=files, photo_type=photo_type, user=current_user
    )
    db.commit()
    for photo in photos:
        db.refresh(photo)
    return photos
