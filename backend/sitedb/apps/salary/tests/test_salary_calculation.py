from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.salary import calculator, models, schemas, services


def _setting(db_session, worker, *, employment_type, daily_rate, custom=None, effective=date(2024, 1, 1)):
    setting = services.set_worker_salary_setting(
        db_session,
        payload=schemas.WorkerSalarySettingCreate(
            worker_id=worker.id,
            employment_type=employment_type,
            daily_rate=daily_rate,
            custom_tax_rates=custom,
            effective_date=effective,
        ),
    )
    db_session.commit()
    return setting


def test_regular_employee_deductions(db_session, make_user):
    worker = make_user(AccountRole.WORKER)
    _setting(db_session, worker, employment_type=models.EmploymentType.REGULAR_EMPLOYEE, daily_rate=200000)

    result = services.calculate_personal_salary(
        db_session, worker_id=worker.id, work_date=date(2024, 3, 4), labor_hours=1.0
    )

    assert result.gross_pay == 200000
    assert result.deductions.income_tax == 6000
    assert result.deductions.resident_tax == 600
    assert result.deductions.national_pension == 9000
    assert result.deductions.health_insurance == 7090
    assert result.deductions.employment_insurance == 1800
    assert result.deductions.long_term_care == 33
    assert result.total_tax == 24523
    assert result.net_pay == 175477


def test_daily_worker_taxed_above_exempt_amount(db_session, make_user):
    worker = make_user(AccountRole.WORKER)
    _setting(db_session, worker, employment_type=models.EmploymentType.DAILY_WORKER, daily_rate=200000)

    result = services.calculate_personal_salary(
        db_session,
        worker_id=worker.id,
        work_date=date(2024, 3, 4),
        labor_hours=1.5,
        additional_deductions=1000,
    )

    assert result.gross_pay == 300000
    assert result.tax_details["taxable_income"] == 75000
    assert result.deductions.income_tax == 4091
    assert result.deductions.resident_tax == 409
    assert result.deductions.other_deductions == 1000
    assert result.total_tax == 5500
    assert result.net_pay == 294500


def test_daily_worker_at_exempt_amount_pays_no_tax():
    rates = calculator.resolve_rates(models.EmploymentType.DAILY_WORKER)
    result = calculator.calculate_worker_day(
        employment_type=models.EmploymentType.DAILY_WORKER,
        daily_rate=150000,
        labor_hours=1.0,
        rates=rates,
    )
    assert result["total_tax"] == 0
    assert result["net_pay"] == 150000


def test_rate_overrides_apply_in_order(db_session, make_user):
    services.update_tax_rate(
        db_session,
        payload=schemas.TaxRateUpdate(
            employment_type=models.EmploymentType.FREELANCER, tax_name="income_tax", rate=2.2
        ),
    )
    plain = make_user(AccountRole.WORKER)
    custom = make_user(AccountRole.WORKER)
    _setting(db_session, plain, employment_type=models.EmploymentType.FREELANCER, daily_rate=100000)
    _setting(
        db_session,
        custom,
        employment_type=models.EmploymentType.FREELANCER,
        daily_rate=100000,
        custom={"income_tax": 5.5},
    )

    table = services.calculate_personal_salary(db_session, worker_id=plain.id, work_date=date(2024, 3, 4), labor_hours=1.0)
    own = services.calculate_personal_salary(db_session, worker_id=custom.id, work_date=date(2024, 3, 4), labor_hours=1.0)

    assert (table.deductions.income_tax, table.deductions.resident_tax) == (2000, 200)
    assert (own.deductions.income_tax, own.deductions.resident_tax) == (5000, 500)


def test_fixed_rate_ignores_labor_hours():
    rates = {"income_tax": (3.3, models.TaxCalculationMethod.FIXED)}
    result = calculator.calculate_worker_day(
        employment_type=models.EmploymentType.FREELANCER,
        daily_rate=100000,
        labor_hours=2.0,
        rates=rates,
    )
    assert result["gross_pay"] == 200000
    assert result["total_tax"] == 3300


def test_settings_replace_and_effective_date(db_session, make_user):
    worker = make_user(AccountRole.WORKER)
    first = _setting(db_session, worker, employment_type=models.EmploymentType.DAILY_WORKER, daily_rate=150000)
    second = _setting(
        db_session,
        worker,
        employment_type=models.EmploymentType.DAILY_WORKER,
        daily_rate=180000,
        effective=date(2024, 6, 1),
    )

    assert first.is_active is False
    assert second.is_active is True
    active = services.list_worker_salary_settings(db_session, worker_id=worker.id)
    assert [row.daily_rate for row in active] == [180000]

    with pytest.raises(HTTPException) as exc:
        services.calculate_personal_salary(db_session, worker_id=worker.id, work_date=date(2024, 3, 4), labor_hours=1.0)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        services.calculate_personal_salary(db_session, worker_id=worker.id, work_date=date(2024, 7, 1), labor_hours=0.3)
    assert exc.value.status_code == 400


def test_saved_records_feed_monthly_summary(db_session, make_user):
    worker = make_user(AccountRole.WORKER)
    _setting(db_session, worker, employment_type=models.EmploymentType.DAILY_WORKER, daily_rate=200000)

    for day, lh in ((date(2024, 3, 4), 1.5), (date(2024, 3, 5), 1.0), (date(2024, 4, 1), 1.0)):
        calc = services.calculate_personal_salary(db_session, worker_id=worker.id, work_date=day, labor_hours=lh)
        services.save_personal_salary_record(db_session, calculation=calc)
    db_session.commit()

    record = db_session.query(models.SalaryRecord).filter(models.SalaryRecord.work_date == date(2024, 3, 4)).one()
    assert (record.regular_hours, record.overtime_hours, record.labor_hours) == (8.0, 4.0, 1.5)

    summary = services.get_personal_monthly_summary(db_session, worker_id=worker.id, year=2024, month=3)
    assert summary.total_records == 2
    assert summary.total_labor_hours == 2.5
    assert summary.total_gross_pay == 500000
    assert summary.total_net_pay == summary.total_gross_pay - summary.total_tax

    empty = services.get_personal_monthly_summary(db_session, worker_id=worker.id, year=2024, month=5)
    assert empty.total_records == 0
    assert empty.total_net_pay == 0
    assert empty.employment_type == models.EmploymentType.DAILY_WORKER


def _report(db_session, site, author, work_date, entries, status=report_models.DailyReportStatus.SUBMITTED):
    report = report_models.DailyReport(site_id=site.id, work_date=work_date, status=status, created_by=author.id)
    for name, lh in entries:
        report.workers.append(report_models.DailyReportWorker(worker_name=name, labor_hours=lh))
    db_session.add(report)
    db_session.commit()
    return report


def test_batch_calculation_aggregates_report_entries(db_session, make_site, make_user):
    site = make_site()
    author = make_user(AccountRole.SITE_MANAGER)
    kim = make_user(AccountRole.WORKER, full_name="김철수")
    other = make_user(AccountRole.SITE_MANAGER)

    _report(db_session, site, author, date(2024, 3, 4), [("김철수", 1.0), ("미등록", 1.0)])
    _report(db_session, site, other, date(2024, 3, 4), [("김철수", 0.5)])
    _report(db_session, site, author, date(2024, 3, 5), [("김철수", 1.0)], status=report_models.DailyReportStatus.DRAFT)

    created = services.calculate_salaries(db_session, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31))
    db_session.commit()

    assert created == 1
    record = db_session.query(models.SalaryRecord).one()
    assert record.worker_id == kim.id
    assert record.labor_hours == 1.5
    assert record.base_pay == 225000
    assert record.notes == "공수: 1.5"

    services.approve_salary_records(db_session, record_ids=[record.id])
    db_session.commit()
    again = services.calculate_salaries(db_session, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31))
    db_session.commit()

    assert again == 0
    records = db_session.query(models.SalaryRecord).all()
    assert [(r.worker_id, r.work_date, r.status.value) for r in records] == [
        (kim.id, date(2024, 3, 4), "approved")
    ]

    _report(db_session, site, author, date(2024, 3, 6), [("김철수", 1.0)])
    third = services.calculate_salaries(db_session, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31))
    db_session.commit()

    assert third == 1
    statuses = sorted(r.status.value for r in db_session.query(models.SalaryRecord).all())
    assert statuses == ["approved", "calculated"]


def test_batch_calculation_uses_rules(db_session, make_site, make_user):
    site = make_site()
    author = make_user(AccountRole.SITE_MANAGER)
    make_user(AccountRole.WORKER, full_name="이영희")
    for payload in (
        schemas.SalaryRuleUpsert(rule_name="시급", rule_type=models.SalaryRuleType.HOURLY_RATE, base_amount=20000),
        schemas.SalaryRuleUpsert(
            rule_name="연장", rule_type=models.SalaryRuleType.OVERTIME_MULTIPLIER, multiplier=2.0
        ),
    ):
        services.upsert_salary_rule(db_session, payload=payload)
    db_session.commit()

    _report(db_session, site, author, date(2024, 3, 4), [("이영희", 1.5)])
    services.calculate_salaries(db_session, date_from=date(2024, 3, 4), date_to=date(2024, 3, 4), site_id=site.id)
    db_session.commit()

    record = db_session.query(models.SalaryRecord).one()
    assert record.base_pay == 160000
    assert record.overtime_pay == 160000
    assert record.total_pay == 320000

    services.upsert_salary_rule(
        db_session,
        payload=schemas.SalaryRuleUpsert(
            rule_name="현장 일당",
            rule_type=models.SalaryRuleType.DAILY_RATE,
            base_amount=180000,
            site_id=site.id,
        ),
    )
    db_session.commit()
    services.calculate_salaries(db_session, date_from=date(2024, 3, 4), date_to=date(2024, 3, 4), site_id=site.id)
    db_session.commit()

    record = db_session.query(models.SalaryRecord).one()
    assert record.base_pay == 270000
    assert record.overtime_pay == 0


def test_status_transitions_and_stats(db_session, make_site, make_user):
    site = make_site()
    author = make_user(AccountRole.SITE_MANAGER)
    make_user(AccountRole.WORKER, full_name="김철수")
    make_user(AccountRole.WORKER, full_name="박민수")
    _report(db_session, site, author, date(2024, 3, 4), [("김철수", 1.0), ("박민수", 1.5)])
    _report(db_session, site, author, date(2024, 3, 5), [("김철수", 1.0)])
    services.calculate_salaries(db_session, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31))
    db_session.commit()

    ids = [r.id for r in db_session.query(models.SalaryRecord).order_by(models.SalaryRecord.work_date).all()]
    assert services.mark_salary_records_paid(db_session, record_ids=ids) == 0
    assert services.approve_salary_records(db_session, record_ids=ids[:2]) == 2
    assert services.mark_salary_records_paid(db_session, record_ids=ids[:1]) == 1
    db_session.commit()

    stats = services.get_salary_stats(db_session, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31))
    assert stats.total_workers == 2
    assert stats.total_records == 3
    assert (stats.pending_calculations, stats.approved_payments, stats.paid_records) == (1, 1, 1)
    assert stats.total_payroll == 525000
    assert stats.average_pay_per_worker == 262500
    assert stats.overtime_percentage == pytest.approx(4 / 28 * 100, rel=1e-3)

    page = services.list_salary_records(db_session, status_filter=models.SalaryRecordStatus.CALCULATED)
    assert page["total"] == 1
