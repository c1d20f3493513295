from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.validation import rules

from . import calculator, models, schemas

logger = logging.getLogger(__name__)

# Reports in these states carry labour figures that payroll may rely on.
PAYABLE_REPORT_STATUSES = (
    report_models.DailyReportStatus.SUBMITTED,
    report_models.DailyReportStatus.APPROVED,
)


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _month_bounds(year: int, month: int) -> Tuple[date, date]:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Month must be between 1 and 12.")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _get_worker(db: Session, worker_id: str) -> account_models.User:
    worker = db.query(account_models.User).filter(account_models.User.id == worker_id).first()
    if not worker:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Worker not found.")
    return worker


# ---------------------------------------------------------------------------
# Tax rates
# ---------------------------------------------------------------------------


def list_tax_rates(
    db: Session, *, employment_type: Optional[models.EmploymentType] = None
) -> List[models.TaxRate]:
    query = db.query(models.TaxRate)
    if employment_type is not None:
        query = query.filter(models.TaxRate.employment_type == employment_type)
    return query.order_by(models.TaxRate.employment_type.asc(), models.TaxRate.tax_name.asc()).all()


def update_tax_rate(
    db: Session, *, payload: schemas.TaxRateUpdate, actor_user_id: Optional[str] = None
) -> models.TaxRate:
    row = (
        db.query(models.TaxRate)
        .filter(
            models.TaxRate.employment_type == payload.employment_type,
            models.TaxRate.tax_name == payload.tax_name,
        )
        .first()
    )
    if row is None:
        row = models.TaxRate(employment_type=payload.employment_type, tax_name=payload.tax_name)
        db.add(row)
    row.rate = payload.rate
    row.calculation_method = payload.calculation_method
    row.description = payload.description
    row.is_active = payload.is_active
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="tax_rate",
        entity_id=row.id,
        action="UPDATE",
        details={
            "employment_type": payload.employment_type.value,
            "tax_name": payload.tax_name,
            "rate": payload.rate,
        },
    )
    return row


def _table_rates(db: Session, employment_type: models.EmploymentType) -> Dict[str, calculator.RateOverride]:
    rows = (
        db.query(models.TaxRate)
        .filter(
            models.TaxRate.employment_type == employment_type,
            models.TaxRate.is_active.is_(True),
        )
        .all()
    )
    return {row.tax_name: (row.rate, row.calculation_method) for row in rows}


# ---------------------------------------------------------------------------
# Worker settings
# ---------------------------------------------------------------------------


def _setting_row(setting: models.WorkerSalarySetting) -> schemas.WorkerSalarySettingRead:
    data = schemas.WorkerSalarySettingRead.model_validate(setting)
    if setting.worker is not None:
        data.worker_name = setting.worker.full_name
    return data


def list_worker_salary_settings(
    db: Session,
    *,
    worker_id: Optional[str] = None,
    active_only: bool = True,
) -> List[schemas.WorkerSalarySettingRead]:
    query = db.query(models.WorkerSalarySetting)
    if worker_id:
        query = query.filter(models.WorkerSalarySetting.worker_id == worker_id)
    if active_only:
        query = query.filter(models.WorkerSalarySetting.is_active.is_(True))
    rows = query.order_by(models.WorkerSalarySetting.effective_date.desc()).all()
    return [_setting_row(row) for row in rows]


def set_worker_salary_setting(
    db: Session,
    *,
    payload: schemas.WorkerSalarySettingCreate,
    actor_user_id: Optional[str] = None,
) -> models.WorkerSalarySetting:
    _get_worker(db, payload.worker_id)

    previous = (
        db.query(models.WorkerSalarySetting)
        .filter(
            models.WorkerSalarySetting.worker_id == payload.worker_id,
            models.WorkerSalarySetting.is_active.is_(True),
        )
        .all()
    )
    for row in previous:
        row.is_active = False

    setting = models.WorkerSalarySetting(
        worker_id=payload.worker_id,
        employment_type=payload.employment_type,
        daily_rate=payload.daily_rate,
        custom_tax_rates=payload.custom_tax_rates,
        bank_account_info=payload.bank_account_info,
        effective_date=payload.effective_date,
        is_active=True,
        created_by=actor_user_id,
    )
    db.add(setting)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="worker_salary_setting",
        entity_id=setting.id,
        action="CREATE",
        details={
            "worker_id": payload.worker_id,
            "employment_type": payload.employment_type.value,
            "daily_rate": payload.daily_rate,
            "replaced": len(previous),
        },
    )
    return setting


def get_effective_setting(db: Session, *, worker_id: str, work_date: date) -> models.WorkerSalarySetting:
    setting = (
        db.query(models.WorkerSalarySetting)
        .filter(
            models.WorkerSalarySetting.worker_id == worker_id,
            models.WorkerSalarySetting.is_active.is_(True),
            models.WorkerSalarySetting.effective_date <= work_date,
        )
        .order_by(models.WorkerSalarySetting.effective_date.desc())
        .first()
    )
    if not setting:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active salary setting for this worker on that date.",
        )
    return setting


# ---------------------------------------------------------------------------
# Personal calculation
# ---------------------------------------------------------------------------


def calculate_personal_salary(
    db: Session,
    *,
    worker_id: str,
    work_date: date,
    labor_hours: float,
    additional_deductions: float = 0.0,
) -> schemas.PersonalSalaryCalculation:
    checked = rules.require_valid(rules.validate_labor_hours(labor_hours))
    setting = get_effective_setting(db, worker_id=worker_id, work_date=work_date)

    rates = calculator.resolve_rates(
        setting.employment_type,
        table_rates=_table_rates(db, setting.employment_type),
        custom_rates=setting.custom_tax_rates,
    )
    result = calculator.calculate_worker_day(
        employment_type=setting.employment_type,
        daily_rate=setting.daily_rate,
        labor_hours=checked["labor_hours"],
        rates=rates,
        additional_deductions=additional_deductions,
    )
    return schemas.PersonalSalaryCalculation(worker_id=worker_id, work_date=work_date, **result)


def save_personal_salary_record(
    db: Session,
    *,
    calculation: schemas.PersonalSalaryCalculation,
    site_id: Optional[str] = None,
    notes: Optional[str] = None,
    actor_user_id: Optional[str] = None,
) -> models.SalaryRecord:
    _get_worker(db, calculation.worker_id)
    regular, overtime = calculator.split_hours(calculation.labor_hours)
    deductions = calculation.deductions

    record = models.SalaryRecord(
        worker_id=calculation.worker_id,
        site_id=site_id,
        work_date=calculation.work_date,
        employment_type=calculation.employment_type,
        labor_hours=calculation.labor_hours,
        regular_hours=regular,
        overtime_hours=overtime,
        base_pay=calculation.base_pay,
        overtime_pay=0.0,
        bonus_pay=0.0,
        deductions=deductions.other_deductions,
        income_tax=deductions.income_tax,
        resident_tax=deductions.resident_tax,
        national_pension=deductions.national_pension,
        health_insurance=deductions.health_insurance,
        employment_insurance=deductions.employment_insurance,
        long_term_care=deductions.long_term_care,
        tax_amount=calculation.total_tax,
        tax_details=calculation.tax_details,
        total_pay=calculation.net_pay,
        status=models.SalaryRecordStatus.CALCULATED,
        notes=notes,
        created_by=actor_user_id,
    )
    db.add(record)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="salary_record",
        entity_id=record.id,
        action="CREATE",
        details={"worker_id": record.worker_id, "work_date": record.work_date.isoformat(), "net_pay": record.total_pay},
    )
    return record


def get_personal_monthly_summary(
    db: Session, *, worker_id: str, year: int, month: int
) -> schemas.MonthlySalarySummary:
    start, end = _month_bounds(year, month)
    records = (
        db.query(models.SalaryRecord)
        .filter(
            models.SalaryRecord.worker_id == worker_id,
            models.SalaryRecord.work_date >= start,
            models.SalaryRecord.work_date < end,
        )
        .order_by(models.SalaryRecord.work_date.asc())
        .all()
    )
    employment_type = models.EmploymentType.DAILY_WORKER
    if records and records[-1].employment_type is not None:
        employment_type = records[-1].employment_type

    return schemas.MonthlySalarySummary(
        worker_id=worker_id,
        year=year,
        month=month,
        total_records=len(records),
        total_labor_hours=sum(r.labor_hours or 0.0 for r in records),
        total_gross_pay=sum(r.base_pay or 0.0 for r in records),
        total_tax=sum(r.tax_amount or 0.0 for r in records),
        total_net_pay=sum(r.total_pay or 0.0 for r in records),
        employment_type=employment_type,
        records=[schemas.SalaryRecordRead.model_validate(r) for r in records],
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def list_salary_rules(
    db: Session, *, site_id: Optional[str] = None, active_only: bool = False
) -> List[models.SalaryRule]:
    query = db.query(models.SalaryRule)
    if site_id:
        query = query.filter(or_(models.SalaryRule.site_id == site_id, models.SalaryRule.site_id.is_(None)))
    if active_only:
        query = query.filter(models.SalaryRule.is_active.is_(True))
    return query.order_by(models.SalaryRule.rule_name.asc()).all()


def upsert_salary_rule(
    db: Session, *, payload: schemas.SalaryRuleUpsert, actor_user_id: Optional[str] = None
) -> models.SalaryRule:
    if payload.id:
        rule = db.query(models.SalaryRule).filter(models.SalaryRule.id == payload.id).first()
        if not rule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Salary rule not found.")
        action = "UPDATE"
    else:
        rule = models.SalaryRule()
        db.add(rule)
        action = "CREATE"

    for field, value in payload.model_dump(exclude={"id"}).items():
        setattr(rule, field, value)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="salary_rule",
        entity_id=rule.id,
        action=action,
        details={"rule_name": rule.rule_name, "rule_type": rule.rule_type.value},
    )
    return rule


def delete_salary_rules(
    db: Session, *, rule_ids: Iterable[str], actor_user_id: Optional[str] = None
) -> int:
    ids = list(rule_ids)
    rows = db.query(models.SalaryRule).filter(models.SalaryRule.id.in_(ids)).all()
    for row in rows:
        db.delete(row)
    db.flush()
    if rows:
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="salary_rule",
            entity_id=None,
            action="DELETE",
            details={"ids": [row.id for row in rows]},
        )
    return len(rows)


def _pick_rule(
    candidates: List[models.SalaryRule],
    rule_type: models.SalaryRuleType,
    *,
    site_id: Optional[str],
    role: Optional[str],
) -> Optional[models.SalaryRule]:
    matching = [
        rule
        for rule in candidates
        if rule.rule_type == rule_type
        and rule.site_id in (None, site_id)
        and rule.role in (None, role)
    ]
    # Site and role specific rules beat general ones.
    matching.sort(key=lambda rule: (rule.site_id is None, rule.role is None, rule.rule_name))
    return matching[0] if matching else None


# ---------------------------------------------------------------------------
# Batch calculation
# ---------------------------------------------------------------------------


def _collect_labor(
    db: Session,
    *,
    site_id: Optional[str],
    date_from: date,
    date_to: date,
) -> Dict[Tuple[str, date, str], float]:
    """Sum 공수 per (worker_id, work_date, site_id) from daily report entries."""
    query = (
        db.query(report_models.DailyReportWorker, report_models.DailyReport)
        .join(report_models.DailyReport, report_models.DailyReportWorker.report_id == report_models.DailyReport.id)
        .filter(
            report_models.DailyReport.work_date >= date_from,
            report_models.DailyReport.work_date <= date_to,
            report_models.DailyReport.status.in_(PAYABLE_REPORT_STATUSES),
        )
    )
    if site_id:
        query = query.filter(report_models.DailyReport.site_id == site_id)

    entries = query.all()
    names = {entry.worker_name for entry, _ in entries if not entry.worker_id}
    by_name: Dict[str, str] = {}
    if names:
        for user in db.query(account_models.User).filter(account_models.User.full_name.in_(names)).all():
            by_name.setdefault(user.full_name, user.id)

    totals: Dict[Tuple[str, date, str], float] = defaultdict(float)
    for entry, report in entries:
        worker_id = entry.worker_id or by_name.get(entry.worker_name)
        if not worker_id:
            logger.info(
                "Skipping unmatched worker entry",
                extra={"worker_name": entry.worker_name, "report_id": report.id},
            )
            continue
        totals[(worker_id, report.work_date, report.site_id)] += entry.labor_hours or 0.0
    return totals


def calculate_salaries(
    db: Session,
    *,
    date_from: date,
    date_to: date,
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
) -> int:
    if date_from > date_to:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="date_from must not be after date_to.")

    stale = db.query(models.SalaryRecord).filter(
        models.SalaryRecord.status == models.SalaryRecordStatus.CALCULATED,
        models.SalaryRecord.work_date >= date_from,
        models.SalaryRecord.work_date <= date_to,
    )
    if site_id:
        stale = stale.filter(models.SalaryRecord.site_id == site_id)
    if worker_id:
        stale = stale.filter(models.SalaryRecord.worker_id == worker_id)
    removed = stale.delete(synchronize_session=False)

    totals = _collect_labor(db, site_id=site_id, date_from=date_from, date_to=date_to)
    if worker_id:
        totals = {key: value for key, value in totals.items() if key[0] == worker_id}

    # Approved or paid worker-days are settled; recalculation leaves them alone.
    settled = db.query(
        models.SalaryRecord.worker_id, models.SalaryRecord.work_date, models.SalaryRecord.site_id
    ).filter(
        models.SalaryRecord.status.in_(
            [models.SalaryRecordStatus.APPROVED, models.SalaryRecordStatus.PAID]
        ),
        models.SalaryRecord.work_date >= date_from,
        models.SalaryRecord.work_date <= date_to,
    )
    locked = {(row[0], row[1], row[2]) for row in settled.all()}
    if locked:
        totals = {key: value for key, value in totals.items() if key not in locked}

    worker_ids = {key[0] for key in totals}
    roles = {
        user.id: user.role.value if user.role is not None else None
        for user in db.query(account_models.User).filter(account_models.User.id.in_(worker_ids)).all()
    } if worker_ids else {}
    candidates = list_salary_rules(db, active_only=True)

    created = 0
    for (wid, work_date, sid), labor_hours in sorted(totals.items(), key=lambda item: (item[0][1], item[0][0])):
        role = roles.get(wid)
        daily_rule = _pick_rule(candidates, models.SalaryRuleType.DAILY_RATE, site_id=sid, role=role)
        hourly_rule = _pick_rule(candidates, models.SalaryRuleType.HOURLY_RATE, site_id=sid, role=role)
        overtime_rule = _pick_rule(candidates, models.SalaryRuleType.OVERTIME_MULTIPLIER, site_id=sid, role=role)

        base_pay, overtime_pay = calculator.rule_based_pay(
            labor_hours=labor_hours,
            daily_rule_amount=daily_rule.base_amount if daily_rule else None,
            hourly_rule_amount=hourly_rule.base_amount if hourly_rule else None,
            overtime_multiplier=overtime_rule.multiplier if overtime_rule else None,
        )
        regular, overtime = calculator.split_hours(labor_hours)
        db.add(
            models.SalaryRecord(
                worker_id=wid,
                site_id=sid,
                work_date=work_date,
                labor_hours=labor_hours,
                regular_hours=regular,
                overtime_hours=overtime,
                base_pay=base_pay,
                overtime_pay=overtime_pay,
                bonus_pay=0.0,
                deductions=0.0,
                tax_amount=0.0,
                total_pay=base_pay + overtime_pay,
                status=models.SalaryRecordStatus.CALCULATED,
                notes=f"공수: {labor_hours}",
                created_by=actor_user_id,
            )
        )
        created += 1
    db.flush()

    logger.info(
        "Salary calculation finished",
        extra={"created": created, "replaced": removed, "site_id": site_id, "worker_id": worker_id},
    )
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="salary_record",
        entity_id=None,
        action="CALCULATE",
        details={
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "site_id": site_id,
            "worker_id": worker_id,
            "created": created,
        },
    )
    return created


def _transition(
    db: Session,
    *,
    record_ids: Iterable[str],
    source: models.SalaryRecordStatus,
    target: models.SalaryRecordStatus,
    actor_user_id: Optional[str],
) -> int:
    ids = list(record_ids)
    rows = (
        db.query(models.SalaryRecord)
        .filter(models.SalaryRecord.id.in_(ids), models.SalaryRecord.status == source)
        .all()
    )
    for row in rows:
        row.status = target
    db.flush()
    if rows:
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="salary_record",
            entity_id=None,
            action=target.value.upper(),
            details={"ids": [row.id for row in rows]},
        )
    return len(rows)


def approve_salary_records(db: Session, *, record_ids: Iterable[str], actor_user_id: Optional[str] = None) -> int:
    return _transition(
        db,
        record_ids=record_ids,
        source=models.SalaryRecordStatus.CALCULATED,
        target=models.SalaryRecordStatus.APPROVED,
        actor_user_id=actor_user_id,
    )


def mark_salary_records_paid(db: Session, *, record_ids: Iterable[str], actor_user_id: Optional[str] = None) -> int:
    return _transition(
        db,
        record_ids=record_ids,
        source=models.SalaryRecordStatus.APPROVED,
        target=models.SalaryRecordStatus.PAID,
        actor_user_id=actor_user_id,
    )


def _records_query(
    db: Session,
    *,
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status_filter: Optional[models.SalaryRecordStatus] = None,
):
    query = db.query(models.SalaryRecord)
    if site_id:
        query = query.filter(models.SalaryRecord.site_id == site_id)
    if worker_id:
        query = query.filter(models.SalaryRecord.worker_id == worker_id)
    if date_from:
        query = query.filter(models.SalaryRecord.work_date >= date_from)
    if date_to:
        query = query.filter(models.SalaryRecord.work_date <= date_to)
    if status_filter:
        query = query.filter(models.SalaryRecord.status == status_filter)
    return query


def list_salary_records(
    db: Session,
    *,
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status_filter: Optional[models.SalaryRecordStatus] = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = _records_query(
        db,
        site_id=site_id,
        worker_id=worker_id,
        date_from=date_from,
        date_to=date_to,
        status_filter=status_filter,
    )
    total = query.count()
    items = (
        query.order_by(models.SalaryRecord.work_date.desc(), models.SalaryRecord.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "total": total, "pages": _pages(total, limit)}


def get_salary_stats(
    db: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    site_id: Optional[str] = None,
) -> schemas.SalaryStats:
    records = _records_query(db, site_id=site_id, date_from=date_from, date_to=date_to).all()
    counts = defaultdict(int)
    for record in records:
        counts[record.status] += 1

    workers = {record.worker_id for record in records}
    total_payroll = sum(record.total_pay or 0.0 for record in records)
    total_hours = sum((record.regular_hours or 0.0) + (record.overtime_hours or 0.0) for record in records)
    overtime_hours = sum(record.overtime_hours or 0.0 for record in records)

    return schemas.SalaryStats(
        total_workers=len(workers),
        total_records=len(records),
        pending_calculations=counts[models.SalaryRecordStatus.CALCULATED],
        approved_payments=counts[models.SalaryRecordStatus.APPROVED],
        paid_records=counts[models.SalaryRecordStatus.PAID],
        total_payroll=total_payroll,
        average_daily_pay=round(total_payroll / len(records), 2) if records else 0.0,
        average_pay_per_worker=round(total_payroll / len(workers), 2) if workers else 0.0,
        overtime_percentage=round(overtime_hours / total_hours * 100, 2) if total_hours else 0.0,
    )
