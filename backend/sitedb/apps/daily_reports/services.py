from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitedb.security import is_admin
from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.documents import storage
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.notifications.models import NotificationType
from sitedb.apps.sites import services as site_services
from sitedb.apps.validation import rules

from . import models, schemas

logger = logging.getLogger(__name__)

MAX_PHOTOS_PER_TYPE = 30
MAX_PHOTO_BYTES = 10 * 1024 * 1024

EDITABLE_STATUSES = {models.DailyReportStatus.DRAFT, models.DailyReportStatus.REJECTED}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return datetime.now(rules.KST).date()


def get_daily_report(db: Session, report_id: str) -> models.DailyReport:
    report = db.query(models.DailyReport).filter(models.DailyReport.id == report_id).first()
    if not report:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Daily report not found.")
    return report


def get_visible_report(db: Session, *, report_id: str, user: account_models.User) -> models.DailyReport:
    report = get_daily_report(db, report_id)
    if report.created_by != user.id:
        site_services.ensure_site_access(db, user, report.site)
    return report


def _clean_workers(details: Iterable[schemas.WorkerDetail]) -> List[models.DailyReportWorker]:
    workers = []
    for detail in details:
        name = (detail.worker_name or "").strip()
        if not name or not detail.labor_hours or detail.labor_hours <= 0:
            continue
        result = rules.require_valid(rules.validate_labor_hours(detail.labor_hours))
        workers.append(
            models.DailyReportWorker(
                worker_id=detail.worker_id,
                worker_name=name,
                labor_hours=result["labor_hours"],
            )
        )
    return workers


def _apply_fields(report: models.DailyReport, payload: schemas.DailyReportBase) -> None:
    for field, value in payload.model_dump(exclude_unset=True, exclude={"worker_details"}).items():
        if field in ("site_id", "work_date"):
            continue
        setattr(report, field, value)


def _create_hq_request(db: Session, *, report: models.DailyReport, user_id: str) -> None:
    content = (report.hq_request or "").strip()
    if not content:
        return
    db.add(
        models.HeadquartersRequest(
            user_id=user_id,
            site_id=report.site_id,
            daily_report_id=report.id,
            subject=f"{report.work_date.isoformat()} 작업일지 본사 요청사항",
            content=content,
            category="daily_report",
            status=models.HeadquartersRequestStatus.PENDING,
        )
    )


def create_daily_report(
    db: Session,
    *,
    payload: schemas.DailyReportCreate,
    user: account_models.User,
) -> models.DailyReport:
    """
    Create the author's report for the site and date, or overwrite it while
    it is still a draft.
    """
    if payload.work_date > _today():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Work date cannot be in the future.")

    site = site_services.get_site(db, payload.site_id)
    site_services.ensure_site_access(db, user, site)
    workers = None if payload.worker_details is None else _clean_workers(payload.worker_details)

    report = (
        db.query(models.DailyReport)
        .filter(
            models.DailyReport.site_id == site.id,
            models.DailyReport.work_date == payload.work_date,
            models.DailyReport.created_by == user.id,
        )
        .first()
    )
    if report is not None and report.status != models.DailyReportStatus.DRAFT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A submitted report already exists for this site and date.",
        )

    created = report is None
    if created:
        report = models.DailyReport(
            site_id=site.id,
            work_date=payload.work_date,
            created_by=user.id,
            status=models.DailyReportStatus.DRAFT,
        )
    _apply_fields(report, payload)
    # Omitted worker details keep the rows already on the draft.
    if workers is not None:
        report.workers = workers
        if payload.total_workers is None:
            report.total_workers = len(workers)
    elif created and payload.total_workers is None:
        report.total_workers = 0
    db.add(report)
    db.flush()

    _create_hq_request(db, report=report, user_id=user.id)
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="daily_report",
        entity_id=report.id,
        action="CREATE" if created else "UPDATE",
        details={"site_id": site.id, "work_date": payload.work_date.isoformat(), "workers": len(report.workers)},
    )
    return report


def update_daily_report(
    db: Session,
    *,
    report_id: str,
    payload: schemas.DailyReportUpdate,
    user: account_models.User,
) -> models.DailyReport:
    report = get_daily_report(db, report_id)
    if report.created_by != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can edit this report.")
    if report.status not in EDITABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only draft or rejected reports can be edited.",
        )

    previous_hq_request = report.hq_request
    _apply_fields(report, payload)
    if payload.worker_details is not None:
        report.workers = _clean_workers(payload.worker_details)
        if payload.total_workers is None:
            report.total_workers = len(report.workers)
    db.add(report)
    db.flush()

    if report.hq_request and report.hq_request != previous_hq_request:
        _create_hq_request(db, report=report, user_id=user.id)
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="daily_report",
        entity_id=report.id,
        action="UPDATE",
    )
    return report


def submit_daily_report(db: Session, *, report_id: str, user: account_models.User) -> models.DailyReport:
    report = get_daily_report(db, report_id)
    if report.created_by != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can submit this report.")
    if report.status not in EDITABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only draft or rejected reports can be submitted.",
        )

    report.status = models.DailyReportStatus.SUBMITTED
    report.rejection_reason = None
    db.add(report)
    db.flush()

    site_name = report.site.name if report.site else ""
    manager_ids = [uid for uid in site_services.get_site_manager_ids(db, report.site_id) if uid != user.id]
    notification_services.notify_users(
        db,
        user_ids=manager_ids,
        title="작업일지 제출",
        message=f"{site_name} {report.work_date.isoformat()} 작업일지가 제출되었습니다.",
        type=NotificationType.DAILY_REPORT_SUBMISSION,
        action_url=f"/daily-reports/{report.id}",
        created_by=user.id,
    )
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="daily_report",
        entity_id=report.id,
        action="SUBMIT",
    )
    return report


def approve_daily_report(
    db: Session,
    *,
    report_id: str,
    approve: bool,
    comments: Optional[str],
    user: account_models.User,
) -> models.DailyReport:
    report = get_daily_report(db, report_id)
    site_services.ensure_site_access(db, user, report.site)
    if report.status != models.DailyReportStatus.SUBMITTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only submitted reports can be approved or rejected.",
        )

    report.status = models.DailyReportStatus.APPROVED if approve else models.DailyReportStatus.REJECTED
    report.approved_by = user.id
    report.approved_at = _utcnow()
    report.rejection_reason = None if approve else comments
    db.add(report)
    db.flush()

    if report.created_by:
        day = report.work_date.isoformat()
        if approve:
            title, message = "작업일지 승인", f"{day} 작업일지가 승인되었습니다."
        else:
            title = "작업일지 반려"
            message = f"{day} 작업일지가 반려되었습니다." + (f" 사유: {comments}" if comments else "")
        notification_services.create_notification(
            db,
            user_id=report.created_by,
            title=title,
            message=message,
            type=NotificationType.DAILY_REPORT_APPROVAL if approve else NotificationType.DAILY_REPORT_REJECTION,
            action_url=f"/daily-reports/{report.id}",
            created_by=user.id,
        )
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="daily_report",
        entity_id=report.id,
        action="APPROVE" if approve else "REJECT",
        details={"comments": comments},
    )
    return report


def list_daily_reports(
    db: Session,
    *,
    user: account_models.User,
    site_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status_filter: Optional[models.DailyReportStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.DailyReport]:
    query = db.query(models.DailyReport)
    if not is_admin(user):
        query = query.filter(
            or_(
                models.DailyReport.site_id.in_(site_services.user_site_ids(db, user)),
                models.DailyReport.created_by == user.id,
            )
        )
    if site_id:
        query = query.filter(models.DailyReport.site_id == site_id)
    if start_date:
        query = query.filter(models.DailyReport.work_date >= start_date)
    if end_date:
        query = query.filter(models.DailyReport.work_date <= end_date)
    if status_filter:
        query = query.filter(models.DailyReport.status == status_filter)
    return (
        query.order_by(models.DailyReport.work_date.desc(), models.DailyReport.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_headquarters_requests(
    db: Session,
    *,
    site_id: Optional[str] = None,
    status_filter: Optional[models.HeadquartersRequestStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.HeadquartersRequest]:
    query = db.query(models.HeadquartersRequest)
    if site_id:
        query = query.filter(models.HeadquartersRequest.site_id == site_id)
    if status_filter:
        query = query.filter(models.HeadquartersRequest.status == status_filter)
    return query.order_by(models.HeadquartersRequest.created_at.desc()).offset(offset).limit(limit).all()


# ---------------------------------------------------------------------------
# Additional photos
# ---------------------------------------------------------------------------


def list_additional_photos(
    db: Session, *, report_id: str, user: account_models.User
) -> List[models.DailyReportPhoto]:
    report = get_visible_report(db, report_id=report_id, user=user)
    return list(report.photos)


def upload_additional_photos(
    db: Session,
    *,
    report_id: str,
    files: List[UploadFile],
    photo_type: models.PhotoType,
    user: account_models.User,
) -> List[models.DailyReportPhoto]:
    report = get_visible_report(db, report_id=report_id, user=user)
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files uploaded.")

    existing = (
        db.query(func.count(models.DailyReportPhoto.id))
        .filter(
            models.DailyReportPhoto.report_id == report.id,
            models.DailyReportPhoto.photo_type == photo_type,
        )
        .scalar()
        or 0
    )
    if existing + len(files) > MAX_PHOTOS_PER_TYPE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_PHOTOS_PER_TYPE} {photo_type.value} photos per report.",
        )
    # Continue after the highest order; deleted photos leave gaps.
    next_order = (
        db.query(func.max(models.DailyReportPhoto.upload_order))
        .filter(
            models.DailyReportPhoto.report_id == report.id,
            models.DailyReportPhoto.photo_type == photo_type,
        )
        .scalar()
    )
    next_order = 0 if next_order is None else next_order + 1
    for upload in files:
        if not (upload.content_type or "").startswith("image/"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{upload.filename} is not an image.",
            )

    stored_keys: List[str] = []
    photos: List[models.DailyReportPhoto] = []
    try:
        for offset, upload in enumerate(files):
            stored = storage.save_upload(
                file=upload,
                folder=f"daily-reports/{report.id}/{photo_type.value}",
                max_bytes=MAX_PHOTO_BYTES,
            )
            stored_keys.append(stored.key)
            photo = models.DailyReportPhoto(
                report_id=report.id,
                photo_type=photo_type,
                file_url=stored.key,
                file_name=Path(upload.filename or "photo").name,
                file_size=stored.size,
                upload_order=next_order + offset,
                uploaded_by=user.id,
            )
            db.add(photo)
            photos.append(photo)
        db.flush()
    except Exception:
        for key in stored_keys:
            storage.delete_file(key)
        raise

    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="daily_report",
        entity_id=report.id,
        action="PHOTO_UPLOAD",
        details={"photo_type": photo_type.value, "count": len(photos)},
    )
    return photos


def delete_additional_photo(db: Session, *, photo_id: str, user: account_models.User) -> str:
    """Delete the photo row and return its storage key for removal after commit."""
    photo = db.query(models.DailyReportPhoto).filter(models.DailyReportPhoto.id == photo_id).first()
    if not photo:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found.")
    if photo.uploaded_by != user.id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the uploader can delete this photo.")
    key = photo.file_url
    db.delete(photo)
    db.flush()
    return key
