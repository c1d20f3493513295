from __future__ import annotations

import io
from datetime import date, timedelta

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.daily_reports import models, schemas, services
from sitedb.apps.notifications import models as notification_models
from sitedb.apps.sites.models import SiteAssignmentRole


@pytest.fixture(autouse=True)
def upload_root(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCUMENT_UPLOAD_DIR", str(tmp_path / "uploads"))


@pytest.fixture()
def crew(make_site, make_user, assign):
    site = make_site()
    author = make_user(AccountRole.WORKER, full_name="김철수")
    manager = make_user(AccountRole.SITE_MANAGER, full_name="박소장")
    assign(site, author)
    assign(site, manager, SiteAssignmentRole.SITE_MANAGER)
    return site, author, manager


def _payload(site, **overrides):
    data = {
        "site_id": site.id,
        "work_date": date(2024, 3, 4),
        "process_type": "타설",
        "worker_details": [
            {"worker_name": "김철수", "labor_hours": 1.0},
            {"worker_name": "이영희", "labor_hours": 1.5},
            {"worker_name": "", "labor_hours": 1.0},
            {"worker_name": "최민수", "labor_hours": 0},
        ],
    }
    data.update(overrides)
    return schemas.DailyReportCreate(**data)


def test_create_filters_workers_and_records_hq_request(db_session, crew):
    site, author, _ = crew
    report = services.create_daily_report(
        db_session, payload=_payload(site, hq_request="펌프카 추가 요청"), user=author
    )
    db_session.commit()

    assert [w.worker_name for w in report.workers] == ["김철수", "이영희"]
    assert report.total_workers == 2
    hq = db_session.query(models.HeadquartersRequest).one()
    assert hq.subject == "2024-03-04 작업일지 본사 요청사항"
    assert hq.daily_report_id == report.id


def test_future_work_date_and_bad_labor_hours_are_rejected(db_session, crew):
    site, author, _ = crew
    with pytest.raises(HTTPException) as exc:
        services.create_daily_report(
            db_session, payload=_payload(site, work_date=date.today() + timedelta(days=2)), user=author
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        services.create_daily_report(
            db_session,
            payload=_payload(site, worker_details=[{"worker_name": "김철수", "labor_hours": 0.3}]),
            user=author,
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        services.create_daily_report(
            db_session,
            payload=_payload(site, worker_details=[{"worker_name": "김철수", "labor_hours": "NaN"}]),
            user=author,
        )
    assert exc.value.status_code == 400


def test_draft_is_upserted_until_submitted(db_session, crew):
    site, author, manager = crew
    first = services.create_daily_report(db_session, payload=_payload(site), user=author)
    second = services.create_daily_report(
        db_session,
        payload=_payload(site, worker_details=[{"worker_name": "정대리", "labor_hours": 0.5}]),
        user=author,
    )
    db_session.commit()

    assert first.id == second.id
    assert [w.worker_name for w in second.workers] == ["정대리"]
    assert db_session.query(models.DailyReportWorker).count() == 1

    services.submit_daily_report(db_session, report_id=first.id, user=author)
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        services.create_daily_report(db_session, payload=_payload(site), user=author)
    assert exc.value.status_code == 409

    notes = db_session.query(notification_models.Notification).all()
    assert [n.user_id for n in notes] == [manager.id]
    assert notes[0].type == notification_models.NotificationType.DAILY_REPORT_SUBMISSION


def test_resave_without_worker_details_keeps_crew(db_session, crew):
    site, author, _ = crew
    report = services.create_daily_report(
        db_session,
        payload=_payload(site, worker_details=[{"worker_name": "김철수", "labor_hours": 1.0}]),
        user=author,
    )
    db_session.commit()

    again = services.create_daily_report(
        db_session,
        payload=schemas.DailyReportCreate(site_id=site.id, work_date=date(2024, 3, 4), notes="memo"),
        user=author,
    )
    db_session.commit()
    db_session.expire_all()

    assert again.id == report.id
    assert again.notes == "memo"
    assert [w.worker_name for w in again.workers] == ["김철수"]
    assert again.total_workers == 1
    assert db_session.query(models.DailyReportWorker).count() == 1


def test_rejection_allows_edit_and_resubmission(db_session, crew):
    site, author, manager = crew
    report = services.create_daily_report(db_session, payload=_payload(site), user=author)
    services.submit_daily_report(db_session, report_id=report.id, user=author)

    with pytest.raises(HTTPException) as exc:
        services.update_daily_report(
            db_session, report_id=report.id, payload=schemas.DailyReportUpdate(notes="x"), user=author
        )
    assert exc.value.status_code == 409

    services.approve_daily_report(
        db_session, report_id=report.id, approve=False, comments="인원 확인 필요", user=manager
    )
    assert report.status == models.DailyReportStatus.REJECTED
    assert report.rejection_reason == "인원 확인 필요"

    with pytest.raises(HTTPException) as exc:
        services.update_daily_report(
            db_session, report_id=report.id, payload=schemas.DailyReportUpdate(notes="x"), user=manager
        )
    assert exc.value.status_code == 403

    services.update_daily_report(
        db_session,
        report_id=report.id,
        payload=schemas.DailyReportUpdate(worker_details=[{"worker_name": "김철수", "labor_hours": 2.0}]),
        user=author,
    )
    services.submit_daily_report(db_session, report_id=report.id, user=author)
    services.approve_daily_report(db_session, report_id=report.id, approve=True, comments=None, user=manager)
    db_session.commit()

    assert report.status == models.DailyReportStatus.APPROVED
    assert report.approved_by == manager.id
    assert report.total_workers == 1

    kinds = [
        n.type
        for n in db_session.query(notification_models.Notification)
        .filter(notification_models.Notification.user_id == author.id)
        .all()
    ]
    assert notification_models.NotificationType.DAILY_REPORT_REJECTION in kinds
    assert notification_models.NotificationType.DAILY_REPORT_APPROVAL in kinds


def test_list_is_scoped_to_assigned_sites(db_session, crew, make_site, make_user):
    site, author, _ = crew
    outsider = make_user(AccountRole.WORKER)
    services.create_daily_report(db_session, payload=_payload(site), user=author)
    services.create_daily_report(
        db_session, payload=_payload(site, work_date=date(2024, 3, 5)), user=author
    )
    db_session.commit()

    reports = services.list_daily_reports(db_session, user=author)
    assert [r.work_date for r in reports] == [date(2024, 3, 5), date(2024, 3, 4)]
    assert services.list_daily_reports(db_session, user=outsider) == []


def _image(name="photo.jpg", content=b"\xff\xd8\xff jpeg", content_type="image/jpeg"):
    return UploadFile(file=io.BytesIO(content), filename=name, headers=Headers({"content-type": content_type}))


def test_photo_upload_limits_and_delete(db_session, crew, monkeypatch):
    site, author, manager = crew
    report = services.create_daily_report(db_session, payload=_payload(site), user=author)
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        services.upload_additional_photos(
            db_session,
            report_id=report.id,
            files=[_image(name="notes.pdf", content_type="application/pdf")],
            photo_type=models.PhotoType.BEFORE,
            user=author,
        )
    assert exc.value.status_code == 400

    photos = services.upload_additional_photos(
        db_session,
        report_id=report.id,
        files=[_image(), _image(name="b.png", content_type="image/png")],
        photo_type=models.PhotoType.BEFORE,
        user=author,
    )
    db_session.commit()
    assert [p.upload_order for p in photos] == [0, 1]

    monkeypatch.setattr(services, "MAX_PHOTOS_PER_TYPE", 2)
    with pytest.raises(HTTPException) as exc:
        services.upload_additional_photos(
            db_session,
            report_id=report.id,
            files=[_image()],
            photo_type=models.PhotoType.BEFORE,
            user=author,
        )
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        services.delete_additional_photo(db_session, photo_id=photos[0].id, user=manager)
    assert exc.value.status_code == 403

    key = services.delete_additional_photo(db_session, photo_id=photos[0].id, user=author)
    db_session.commit()
    assert key == photos[0].file_url
    db_session.expire_all()
    assert len(services.list_additional_photos(db_session, report_id=report.id, user=author)) == 1

    more = services.upload_additional_photos(
        db_session,
        report_id=report.id,
        files=[_image(name="c.jpg")],
        photo_type=models.PhotoType.BEFORE,
        user=author,
    )
    db_session.commit()
    assert more[0].upload_order == 2
    orders = [p.upload_order for p in services.list_additional_photos(db_session, report_id=report.id, user=author)]
    assert sorted(orders) == [1, 2]
