from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sitedb.database import get_read_db
from sitedb.security import get_current_active_user
from sitedb.apps.accounts.models import User
from sitedb.apps.sites import services as site_services

from . import rules, schemas

router = APIRouter(prefix="/validation", tags=["validation"])


@router.post("/phone-number")
def check_phone_number(
    payload: schemas.PhoneNumberCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_korean_phone_number(payload.phone_number)


@router.post("/business-number")
def check_business_number(
    payload: schemas.BusinessNumberCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_business_registration_number(payload.number, payload.check_checksum)


@router.post("/datetime")
def check_datetime(
    payload: schemas.DatetimeCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_datetime_kst(payload.value)


@router.post("/labor-hours")
def check_labor_hours(
    payload: schemas.LaborHoursCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_labor_hours(payload.labor_hours)


@router.post("/worker-schedule")
def check_worker_schedule(
    payload: schemas.WorkerScheduleCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_worker_schedule(
        payload.schedule.model_dump(),
        [entry.model_dump() for entry in payload.existing_schedules],
    )


@router.post("/site-location")
def check_site_location(
    payload: schemas.SiteLocationCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_site_location(payload.address, payload.latitude, payload.longitude)


@router.post("/document-metadata")
def check_document_metadata(
    payload: schemas.DocumentMetadataCheck,
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_document_metadata(
        title=payload.title,
        description=payload.description,
        file_type=payload.file_type,
        file_size=payload.file_size,
    )


@router.post("/permissions")
def check_permissions(
    payload: schemas.PermissionCheck,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return rules.validate_user_permissions(
        role=current_user.role.value,
        resource=payload.resource,
        action=payload.action,
        assigned_sites=site_services.user_site_ids(db, current_user),
        site_id=payload.site_id,
    )
