from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole, Organization
from sitedb.apps.attendance import models, schemas, services
from sitedb.apps.sites.models import SiteAssignmentRole

MORNING = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def crew(make_site, make_user, assign):
    site = make_site()
    worker = make_user(AccountRole.WORKER, full_name="김철수")
    helper = make_user(AccountRole.WORKER, full_name="이영희")
    manager = make_user(AccountRole.SITE_MANAGER, full_name="박소장")
    assign(site, worker)
    assign(site, helper)
    assign(site, manager, SiteAssignmentRole.SITE_MANAGER)
    return site, worker, helper, manager


def _bulk(site, work_date, *workers):
    return schemas.BulkAttendanceCreate(
        site_id=site.id,
        work_date=work_date,
        workers=[
            schemas.BulkAttendanceWorker(user_id=user.id, check_in_time=time(8, 0), check_out_time=out)
            for user, out in workers
        ],
    )


def test_check_in_and_out_records_clock_hours(db_session, crew):
    site, worker, helper, _ = crew
    record = services.check_in(db_session, user=worker, payload=schemas.CheckInRequest(site_id=site.id), now=MORNING)
    db_session.commit()

    assert record.work_date == MORNING.astimezone().date()
    assert record.status == models.AttendanceStatus.PRESENT

    with pytest.raises(HTTPException) as exc:
        services.check_in(db_session, user=worker, payload=schemas.CheckInRequest(site_id=site.id), now=MORNING)
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        services.check_out(db_session, user=helper, attendance_id=record.id, now=MORNING + timedelta(hours=9))
    assert exc.value.status_code == 403

    services.check_out(db_session, user=worker, attendance_id=record.id, now=MORNING + timedelta(hours=10, minutes=30))
    db_session.commit()

    assert (record.work_hours, record.overtime_hours) == (10.5, 2.5)
    with pytest.raises(HTTPException) as exc:
        services.check_out(db_session, user=worker, attendance_id=record.id, now=MORNING + timedelta(hours=11))
    assert exc.value.status_code == 409


def test_check_in_needs_assignment_and_attendance_role(db_session, crew, make_user):
    site, *_ = crew
    stranger = make_user(AccountRole.WORKER)
    partner = make_user(AccountRole.CUSTOMER_MANAGER)

    for user in (stranger, partner):
        with pytest.raises(HTTPException) as exc:
            services.check_in(db_session, user=user, payload=schemas.CheckInRequest(site_id=site.id), now=MORNING)
        assert exc.value.status_code == 403


def test_bulk_attendance_by_site_manager(db_session, crew, make_user, make_site):
    site, worker, helper, manager = crew
    records = services.add_bulk_attendance(
        db_session,
        user=manager,
        payload=_bulk(site, date(2024, 3, 4), (worker, time(17, 0)), (helper, None)),
    )
    db_session.commit()

    assert [(r.work_hours, r.overtime_hours, r.labor_hours) for r in records] == [(9.0, 1.0, 1.0), (0.0, 0.0, 1.0)]

    with pytest.raises(HTTPException) as exc:
        services.add_bulk_attendance(db_session, user=manager, payload=_bulk(site, date(2024, 3, 4), (worker, None)))
    assert exc.value.status_code == 409

    ghost = make_user(AccountRole.WORKER)
    db_session.delete(ghost)
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        services.add_bulk_attendance(db_session, user=manager, payload=_bulk(site, date(2024, 3, 5), (ghost, None)))
    assert exc.value.status_code == 404

    other_site = make_site()
    for user in (worker, manager):
        with pytest.raises(HTTPException) as exc:
            services.add_bulk_attendance(db_session, user=user, payload=_bulk(other_site, date(2024, 3, 5), (worker, None)))
        assert exc.value.status_code == 403

    with pytest.raises(ValueError):
        _bulk(site, date(2024, 3, 6), (worker, None), (worker, None))


def test_my_attendance_monthly_and_summaries(db_session, crew):
    site, worker, helper, manager = crew
    services.add_bulk_attendance(
        db_session, user=manager, payload=_bulk(site, date(2024, 3, 4), (worker, time(18, 0)), (helper, time(16, 0)))
    )
    second = services.add_bulk_attendance(db_session, user=manager, payload=_bulk(site, date(2024, 3, 5), (worker, time(16, 0))))
    services.add_bulk_attendance(db_session, user=manager, payload=_bulk(site, date(2024, 4, 1), (worker, time(16, 0))))
    services.update_attendance_record(
        db_session,
        user=manager,
        attendance_id=second[0].id,
        payload=schemas.AttendanceUpdate(status=models.AttendanceStatus.HOLIDAY),
    )
    db_session.commit()

    records, summary = services.get_my_attendance(
        db_session, user=worker, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31)
    )
    assert [r.work_date for r in records] == [date(2024, 3, 5), date(2024, 3, 4)]
    assert summary == {
        "total_days": 2,
        "total_hours": 18.0,
        "total_overtime": 2.0,
        "days_present": 1,
        "days_absent": 0,
        "days_holiday": 1,
    }

    monthly = services.get_monthly_attendance(db_session, user=worker, year=2024, month=4)
    assert [r.work_date for r in monthly] == [date(2024, 4, 1)]
    with pytest.raises(HTTPException):
        services.get_monthly_attendance(db_session, user=worker, year=2024, month=13)

    rows = services.get_attendance_summary(
        db_session, user=manager, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31), site_id=site.id
    )
    assert [(row["worker_name"], row["total_days"], row["total_hours"]) for row in rows] == [
        ("김철수", 2, 18.0),
        ("이영희", 1, 8.0),
    ]

    own = services.get_attendance_summary(
        db_session, user=helper, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31)
    )
    assert [row["user_id"] for row in own] == [helper.id]
    with pytest.raises(HTTPException) as exc:
        services.list_attendance_records(
            db_session, user=helper, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31), user_id=worker.id
        )
    assert exc.value.status_code == 403


def test_manager_edit_recomputes_hours_and_checks_labor_units(db_session, crew):
    site, worker, _, manager = crew
    record = services.check_in(db_session, user=worker, payload=schemas.CheckInRequest(site_id=site.id), now=MORNING)
    db_session.commit()

    services.update_attendance_record(
        db_session,
        user=manager,
        attendance_id=record.id,
        payload=schemas.AttendanceUpdate(check_out_time=MORNING + timedelta(hours=6), labor_hours=0.75),
    )
    db_session.commit()
    assert (record.work_hours, record.labor_hours) == (6.0, 0.75)

    with pytest.raises(HTTPException) as exc:
        services.update_attendance_record(
            db_session, user=manager, attendance_id=record.id, payload=schemas.AttendanceUpdate(labor_hours=0.3)
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        services.update_attendance_record(
            db_session,
            user=manager,
            attendance_id=record.id,
            payload=schemas.AttendanceUpdate(check_out_time=MORNING - timedelta(hours=1)),
        )
    assert exc.value.status_code == 400


def test_today_attendance_is_scoped_by_role(db_session, crew, make_user):
    site, worker, helper, manager = crew
    for user in (worker, helper):
        services.check_in(db_session, user=user, payload=schemas.CheckInRequest(site_id=site.id), now=MORNING)
    db_session.commit()

    assert len(services.get_today_attendance(db_session, user=manager, site_id=site.id, now=MORNING)) == 2
    assert [r.user_id for r in services.get_today_attendance(db_session, user=worker, now=MORNING)] == [worker.id]
    admin = make_user(AccountRole.ADMIN)
    assert len(services.get_today_attendance(db_session, user=admin, now=MORNING)) == 2


def test_company_summary_reports_peak_head_count(db_session, crew, make_site):
    _, worker, helper, _ = crew
    org = Organization(name="대한건설")
    db_session.add(org)
    db_session.commit()
    site = make_site(organization_id=org.id)
    rows = [
        models.AttendanceRecord(user_id=worker.id, site_id=site.id, work_date=date(2024, 3, 4), work_hours=8.0),
        models.AttendanceRecord(user_id=helper.id, site_id=site.id, work_date=date(2024, 3, 4), work_hours=9.0),
        models.AttendanceRecord(user_id=worker.id, site_id=site.id, work_date=date(2024, 3, 5), work_hours=8.0),
        models.AttendanceRecord(
            user_id=helper.id,
            site_id=site.id,
            work_date=date(2024, 3, 5),
            status=models.AttendanceStatus.ABSENT,
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()

    result = services.get_company_attendance_summary(
        db_session, organization_id=org.id, date_from=date(2024, 3, 1), date_to=date(2024, 3, 31)
    )
    assert result["records"] == [
        {"date": date(2024, 3, 4), "total_workers": 2, "total_hours": 17.0},
        {"date": date(2024, 3, 5), "total_workers": 1, "total_hours": 8.0},
    ]
    assert (result["total_days"], result["total_workers"], result["total_hours"]) == (2, 2, 25.0)
