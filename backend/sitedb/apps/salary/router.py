from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import require_admin
from sitedb.apps.accounts.models import User

from . import models, schemas, services

router = APIRouter(prefix="/salary", tags=["salary"])


@router.get("/tax-rates", response_model=List[schemas.TaxRateRead])
def list_tax_rates(
    employment_type: Optional[models.EmploymentType] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_tax_rates(db, employment_type=employment_type)


@router.put("/tax-rates", response_model=schemas.TaxRateRead)
def update_tax_rate(
    payload: schemas.TaxRateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    row = services.update_tax_rate(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(row)
    return row


@router.get("/settings", response_model=List[schemas.WorkerSalarySettingRead])
def list_settings(
    worker_id: Optional[str] = None,
    active_only: bool = True,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_worker_salary_settings(db, worker_id=worker_id, active_only=active_only)


@router.post("/settings", response_model=schemas.WorkerSalarySettingRead, status_code=status.HTTP_201_CREATED)
def set_setting(
    payload: schemas.WorkerSalarySettingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    setting = services.set_worker_salary_setting(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(setting)
    return setting


@router.get("/rules", response_model=List[schemas.SalaryRuleRead])
def list_rules(
    site_id: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_salary_rules(db, site_id=site_id, active_only=active_only)


@router.put("/rules", response_model=schemas.SalaryRuleRead)
def upsert_rule(
    payload: schemas.SalaryRuleUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    rule = services.upsert_salary_rule(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(rule)
    return rule


@router.post("/rules/delete", response_model=schemas.SalaryBulkResult)
def delete_rules(
    payload: schemas.IdList,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.delete_salary_rules(db, rule_ids=payload.ids, actor_user_id=current_user.id)
    db.commit()
    return {"updated": count}


@router.post("/personal/calculate", response_model=schemas.PersonalSalaryCalculation)
def calculate_personal(
    payload: schemas.PersonalSalaryRequest,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.calculate_personal_salary(
        db,
        worker_id=payload.worker_id,
        work_date=payload.work_date,
        labor_hours=payload.labor_hours,
        additional_deductions=payload.additional_deductions,
    )


@router.post("/personal/records", response_model=schemas.SalaryRecordRead, status_code=status.HTTP_201_CREATED)
def save_personal_record(
    payload: schemas.PersonalSalarySave,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    record = services.save_personal_salary_record(
        db,
        calculation=payload.calculation,
        site_id=payload.site_id,
        notes=payload.notes,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(record)
    return record


@router.get("/personal/{worker_id}/monthly", response_model=schemas.MonthlySalarySummary)
def monthly_summary(
    worker_id: str,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.get_personal_monthly_summary(db, worker_id=worker_id, year=year, month=month)


@router.post("/calculate", response_model=schemas.SalaryCalculationResult)
def calculate_salaries(
    payload: schemas.SalaryCalculationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    created = services.calculate_salaries(
        db,
        date_from=payload.date_from,
        date_to=payload.date_to,
        site_id=payload.site_id,
        worker_id=payload.worker_id,
        actor_user_id=current_user.id,
    )
    db.commit()
    return {"created": created}


@router.get("/records", response_model=schemas.SalaryRecordListResponse)
def list_records(
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[models.SalaryRecordStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_salary_records(
        db,
        site_id=site_id,
        worker_id=worker_id,
        date_from=date_from,
        date_to=date_to,
        status_filter=status,
        page=page,
        limit=limit,
    )


@router.post("/records/approve", response_model=schemas.SalaryBulkResult)
def approve_records(
    payload: schemas.IdList,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.approve_salary_records(db, record_ids=payload.ids, actor_user_id=current_user.id)
    db.commit()
    return {"updated": count}


@router.post("/records/paid", response_model=schemas.SalaryBulkResult)
def mark_paid(
    payload: schemas.IdList,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.mark_salary_records_paid(db, record_ids=payload.ids, actor_user_id=current_user.id)
    db.commit()
    return {"updated": count}


@router.get("/stats", response_model=schemas.SalaryStats)
def salary_stats(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    site_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.get_salary_stats(db, date_from=date_from, date_to=date_to, site_id=site_id)
