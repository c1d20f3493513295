from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from sitedb.security import is_admin
from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.sites import models as site_models
from sitedb.apps.sites import services as site_services
from sitedb.apps.validation.rules import require_valid, validate_labor_hours, validate_user_permissions

from . import models, schemas

logger = logging.getLogger(__name__)

REGULAR_HOURS = 8.0
BULK_LABOR_HOURS = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _local_date(now: datetime) -> date:
    return _as_utc(now).astimezone().date()


# ---------------------------------------------------------------------------
# Access helpers
# ---------------------------------------------------------------------------


def _require(db: Session, user: account_models.User, action: str, *, site_id: Optional[str] = None) -> None:
    assigned = None
    if user.role == account_models.AccountRole.SITE_MANAGER and site_id:
        assigned = site_services.user_site_ids(db, user)
    result = validate_user_permissions(
        role=user.role.value,
        resource="attendance",
        action=action,
        assigned_sites=assigned,
        site_id=site_id,
    )
    if not result.get("has_permission"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to access attendance.")


def _scoped(db: Session, query, user: account_models.User):
    """Admins see everything, site managers their sites, workers their own rows."""
    if is_admin(user):
        return query
    if user.role == account_models.AccountRole.SITE_MANAGER:
        return query.filter(
            or_(
                models.AttendanceRecord.user_id == user.id,
                models.AttendanceRecord.site_id.in_(site_services.user_site_ids(db, user)),
            )
        )
    return query.filter(models.AttendanceRecord.user_id == user.id)


def get_attendance_record(db: Session, attendance_id: str) -> models.AttendanceRecord:
    record = db.query(models.AttendanceRecord).filter(models.AttendanceRecord.id == attendance_id).first()
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attendance record not found.")
    return record


def _clock_hours(check_in: datetime, check_out: datetime) -> Tuple[float, float]:
    """(work_hours, overtime_hours) between two stamps; beyond 8 hours is overtime."""
    hours = (_as_utc(check_out) - _as_utc(check_in)).total_seconds() / 3600
    if hours < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-out must not be before check-in.",
        )
    hours = round(hours, 2)
    return hours, round(max(hours - REGULAR_HOURS, 0.0), 2)


def _date_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date_from must not be after date_to.")


# ---------------------------------------------------------------------------
# Check-in / check-out
# ---------------------------------------------------------------------------


def check_in(
    db: Session,
    *,
    user: account_models.User,
    payload: schemas.CheckInRequest,
    now: Optional[datetime] = None,
) -> models.AttendanceRecord:
    _require(db, user, "create")
    site = site_services.get_site(db, payload.site_id)
    site_services.ensure_site_access(db, user, site)

    now = now or _utcnow()
    today = _local_date(now)
    existing = (
        db.query(models.AttendanceRecord.id)
        .filter(
            models.AttendanceRecord.user_id == user.id,
            models.AttendanceRecord.site_id == site.id,
            models.AttendanceRecord.work_date == today,
        )
        .first()
    )
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already checked in today.")

    record = models.AttendanceRecord(
        user_id=user.id,
        site_id=site.id,
        work_date=today,
        check_in_time=now,
        status=models.AttendanceStatus.PRESENT,
        notes=payload.notes,
        created_by=user.id,
        updated_by=user.id,
    )
    db.add(record)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="attendance",
        entity_id=record.id,
        action="CHECK_IN",
        details={"site_id": site.id, "work_date": today.isoformat()},
    )
    return record


def check_out(
    db: Session,
    *,
    user: account_models.User,
    attendance_id: str,
    now: Optional[datetime] = None,
) -> models.AttendanceRecord:
    record = get_attendance_record(db, attendance_id)
    if record.user_id != user.id:
        _require(db, user, "update", site_id=record.site_id)
    if record.check_out_time is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already checked out.")
    if record.check_in_time is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No check-in recorded.")

    now = now or _utcnow()
    record.work_hours, record.overtime_hours = _clock_hours(record.check_in_time, now)
    record.check_out_time = now
    record.updated_by = user.id
    db.add(record)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="attendance",
        entity_id=record.id,
        action="CHECK_OUT",
        details={"work_hours": record.work_hours, "overtime_hours": record.overtime_hours},
    )
    return record


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_today_attendance(
    db: Session,
    *,
    user: account_models.User,
    site_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[models.AttendanceRecord]:
    _require(db, user, "read")
    today = _local_date(now or _utcnow())
    query = db.query(models.AttendanceRecord).filter(models.AttendanceRecord.work_date == today)
    if site_id:
        query = query.filter(models.AttendanceRecord.site_id == site_id)
    query = _scoped(db, query, user)
    return query.order_by(models.AttendanceRecord.check_in_time.asc()).all()


def list_attendance_records(
    db: Session,
    *,
    user: account_models.User,
    date_from: date,
    date_to: date,
    user_id: Optional[str] = None,
    site_id: Optional[str] = None,
) -> List[models.AttendanceRecord]:
    _require(db, user, "read")
    _date_range(date_from, date_to)
    if user_id and user_id != user.id and user.role == account_models.AccountRole.WORKER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Workers can only view their own attendance.")

    query = db.query(models.AttendanceRecord).filter(
        models.AttendanceRecord.work_date >= date_from,
        models.AttendanceRecord.work_date <= date_to,
    )
    if user_id:
        query = query.filter(models.AttendanceRecord.user_id == user_id)
    if site_id:
        query = query.filter(models.AttendanceRecord.site_id == site_id)
    query = _scoped(db, query, user)
    return query.order_by(models.AttendanceRecord.work_date.asc(), models.AttendanceRecord.check_in_time.asc()).all()


def summarize(records: List[models.AttendanceRecord]) -> Dict[str, object]:
    statuses = [record.status for record in records]
    return {
        "total_days": len(records),
        "total_hours": round(sum(record.work_hours or 0.0 for record in records), 2),
        "total_overtime": round(sum(record.overtime_hours or 0.0 for record in records), 2),
        "days_present": statuses.count(models.AttendanceStatus.PRESENT),
        "days_absent": statuses.count(models.AttendanceStatus.ABSENT),
        "days_holiday": statuses.count(models.AttendanceStatus.HOLIDAY),
    }


def get_my_attendance(
    db: Session,
    *,
    user: account_models.User,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    site_id: Optional[str] = None,
) -> Tuple[List[models.AttendanceRecord], Dict[str, object]]:
    _require(db, user, "read")
    _date_range(start_date, end_date)
    query = db.query(models.AttendanceRecord).filter(models.AttendanceRecord.user_id == user.id)
    if start_date:
        query = query.filter(models.AttendanceRecord.work_date >= start_date)
    if end_date:
        query = query.filter(models.AttendanceRecord.work_date <= end_date)
    if site_id:
        query = query.filter(models.AttendanceRecord.site_id == site_id)
    records = query.order_by(models.AttendanceRecord.work_date.desc()).all()
    return records, summarize(records)


def get_monthly_attendance(
    db: Session,
    *,
    user: account_models.User,
    year: int,
    month: int,
) -> List[models.AttendanceRecord]:
    _require(db, user, "read")
    if not 1 <= month <= 12:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Month must be between 1 and 12.")
    last_day = calendar.monthrange(year, month)[1]
    return (
        db.query(models.AttendanceRecord)
        .filter(
            models.AttendanceRecord.user_id == user.id,
            models.AttendanceRecord.work_date >= date(year, month, 1),
            models.AttendanceRecord.work_date <= date(year, month, last_day),
        )
        .order_by(models.AttendanceRecord.work_date.asc())
        .all()
    )


def get_attendance_summary(
    db: Session,
    *,
    user: account_models.User,
    start_date: date,
    end_date: date,
    site_id: Optional[str] = None,
) -> List[Dict[str, object]]:
    """Per-worker totals over the range, ordered by worker name."""
    records = list_attendance_records(db, user=user, date_from=start_date, date_to=end_date, site_id=site_id)
    by_worker: Dict[str, List[models.AttendanceRecord]] = defaultdict(list)
    for record in records:
        by_worker[record.user_id].append(record)

    rows = []
    for worker_id, worker_records in by_worker.items():
        worker = worker_records[0].user
        row = summarize(worker_records)
        row.update(
            user_id=worker_id,
            worker_name=worker.full_name if worker else None,
            email=worker.email if worker else None,
        )
        rows.append(row)
    return sorted(rows, key=lambda row: (row["worker_name"] or "", row["user_id"]))


def get_company_attendance_summary(
    db: Session,
    *,
    organization_id: str,
    date_from: date,
    date_to: date,
    site_id: Optional[str] = None,
) -> Dict[str, object]:
    """
    Daily head counts and hours over an organisation's sites.
    total_workers is the busiest day's head count.
    """
    _date_range(date_from, date_to)
    query = (
        db.query(models.AttendanceRecord)
        .join(site_models.Site, site_models.Site.id == models.AttendanceRecord.site_id)
        .filter(
            site_models.Site.organization_id == organization_id,
            models.AttendanceRecord.work_date >= date_from,
            models.AttendanceRecord.work_date <= date_to,
        )
    )
    if site_id:
        query = query.filter(models.AttendanceRecord.site_id == site_id)

    workers: Dict[date, set] = defaultdict(set)
    hours: Dict[date, float] = defaultdict(float)
    for record in query.all():
        if record.status != models.AttendanceStatus.PRESENT:
            continue
        workers[record.work_date].add(record.user_id)
        hours[record.work_date] += record.work_hours or 0.0

    days = [
        {"date": day, "total_workers": len(workers[day]), "total_hours": round(hours[day], 2)}
        for day in sorted(workers)
    ]
    return {
        "records": days,
        "total_days": len(days),
        "total_workers": max((day["total_workers"] for day in days), default=0),
        "total_hours": round(sum(day["total_hours"] for day in days), 2),
    }


# ---------------------------------------------------------------------------
# Manager edits
# ---------------------------------------------------------------------------


def update_attendance_record(
    db: Session,
    *,
    user: account_models.User,
    attendance_id: str,
    payload: schemas.AttendanceUpdate,
) -> models.AttendanceRecord:
    record = get_attendance_record(db, attendance_id)
    _require(db, user, "update", site_id=record.site_id)

    data = payload.model_dump(exclude_unset=True)
    if data.get("status", "") is None:
        del data["status"]
    if data.get("labor_hours") is not None:
        data["labor_hours"] = require_valid(validate_labor_hours(data["labor_hours"]))["labor_hours"]
    for field, value in data.items():
        setattr(record, field, value)

    if record.check_in_time is not None and record.check_out_time is not None:
        record.work_hours, record.overtime_hours = _clock_hours(record.check_in_time, record.check_out_time)
    record.updated_by = user.id
    db.add(record)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="attendance",
        entity_id=record.id,
        action="UPDATE",
        details={"fields": sorted(data)},
    )
    return record


def add_bulk_attendance(
    db: Session,
    *,
    user: account_models.User,
    payload: schemas.BulkAttendanceCreate,
) -> List[models.AttendanceRecord]:
    """Record a crew's day in one go. Every row counts as one 공수."""
    _require(db, user, "update", site_id=payload.site_id)
    site = site_services.get_site(db, payload.site_id)

    worker_ids = [worker.user_id for worker in payload.workers]
    found = {
        row.id
        for row in db.query(account_models.User.id).filter(account_models.User.id.in_(worker_ids)).all()
    }
    missing = [worker_id for worker_id in worker_ids if worker_id not in found]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown workers: {', '.join(missing)}")

    taken = {
        row.user_id
        for row in db.query(models.AttendanceRecord.user_id).filter(
            models.AttendanceRecord.site_id == site.id,
            models.AttendanceRecord.work_date == payload.work_date,
            models.AttendanceRecord.user_id.in_(worker_ids),
        ).all()
    }
    if taken:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Attendance already recorded for: {', '.join(sorted(taken))}",
        )

    records = []
    for worker in payload.workers:
        # Wall-clock times are local to the server.
        check_in = datetime.combine(payload.work_date, worker.check_in_time).astimezone()
        check_out = None
        work_hours = overtime_hours = 0.0
        if worker.check_out_time is not None:
            check_out = datetime.combine(payload.work_date, worker.check_out_time).astimezone()
            work_hours, overtime_hours = _clock_hours(check_in, check_out)
        record = models.AttendanceRecord(
            user_id=worker.user_id,
            site_id=site.id,
            work_date=payload.work_date,
            check_in_time=check_in,
            check_out_time=check_out,
            work_hours=work_hours,
            overtime_hours=overtime_hours,
            labor_hours=BULK_LABOR_HOURS,
            status=models.AttendanceStatus.PRESENT,
            notes=worker.notes,
            created_by=user.id,
            updated_by=user.id,
        )
        db.add(record)
        records.append(record)
    db.flush()

    logger.info(
        "Bulk attendance recorded",
        extra={"site_id": site.id, "work_date": payload.work_date.isoformat(), "count": len(records)},
    )
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="attendance",
        entity_id=None,
        action="BULK_CREATE",
        details={"site_id": site.id, "work_date": payload.work_date.isoformat(), "user_ids": worker_ids},
    )
    return records
