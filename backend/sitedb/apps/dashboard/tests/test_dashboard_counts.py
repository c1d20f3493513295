from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivitySeverity
from sitedb.apps.audit.schemas import ActivityLogCreate
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.dashboard import services
from sitedb.apps.materials import models as material_models
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.sites import models as site_models
from sitedb.apps.sites.models import SiteAssignmentRole

NOW = datetime(2024, 3, 4, 3, 0, tzinfo=timezone.utc)


@pytest.fixture()
def populated(db_session, make_site, make_user, assign):
    admin = make_user(AccountRole.ADMIN)
    manager = make_user(AccountRole.SITE_MANAGER, full_name="박소장")
    worker = make_user(AccountRole.WORKER, full_name="김철수")
    make_user(AccountRole.WORKER, is_active=False)

    site = make_site("강남 현장")
    closed = make_site("종료 현장")
    closed.status = site_models.SiteStatus.COMPLETED
    assign(site, manager, SiteAssignmentRole.SITE_MANAGER)
    assign(site, worker)

    cement = material_models.Material(code="NPC-1000", name="NPC-1000", unit="kg")
    sand = material_models.Material(code="SAND", name="모래", unit="m3")
    rebar = material_models.Material(code="REBAR", name="철근", unit="t")
    db_session.add_all([cement, sand, rebar])
    db_session.flush()
    db_session.add_all(
        [
            material_models.MaterialInventory(site_id=site.id, material_id=cement.id, current_stock=0, minimum_stock=10),
            material_models.MaterialInventory(site_id=site.id, material_id=sand.id, current_stock=5, minimum_stock=10),
            material_models.MaterialInventory(site_id=site.id, material_id=rebar.id, current_stock=50, minimum_stock=10),
            material_models.MaterialRequest(
                request_number="MR-1", site_id=site.id, requested_by=worker.id, request_date=date(2024, 3, 1)
            ),
            material_models.MaterialRequest(
                request_number="MR-2",
                site_id=site.id,
                requested_by=worker.id,
                request_date=date(2024, 3, 2),
                status=material_models.MaterialRequestStatus.DELIVERED,
            ),
            report_models.DailyReport(
                site_id=site.id,
                work_date=date(2024, 3, 4),
                status=report_models.DailyReportStatus.SUBMITTED,
                total_workers=3,
                created_by=worker.id,
            ),
            report_models.DailyReport(
                site_id=site.id,
                work_date=date(2024, 3, 1),
                status=report_models.DailyReportStatus.APPROVED,
                created_by=worker.id,
            ),
        ]
    )
    notification_services.create_notification(db_session, user_id=admin.id, title="알림", message="확인 필요")
    audit_services.create_activity_log(
        db_session,
        data=ActivityLogCreate(
            entity_type="security_alert",
            entity_id="alert-1",
            action="SECURITY_ALERT",
            details={"event_type": "SUSPICIOUS_IP", "threat_level": "MEDIUM"},
            severity=ActivitySeverity.WARN,
            created_at=NOW,
        ),
    )
    db_session.commit()
    return {"admin": admin, "manager": manager, "worker": worker, "site": site}


def test_admin_dashboard_counts(db_session, populated):
    dashboard = services.get_admin_dashboard(db_session, user=populated["admin"], now=NOW)

    assert dashboard.active_sites == 1
    assert dashboard.active_users_by_role == {"admin": 1, "site_manager": 1, "worker": 1}
    assert dashboard.pending_material_requests == 1
    assert dashboard.reports_awaiting_approval == 1
    assert (dashboard.low_stock_items, dashboard.out_of_stock_items) == (1, 1)
    assert dashboard.todays_reports == 1
    assert dashboard.unread_notifications == 1
    assert dashboard.active_security_threats == 1


def test_site_dashboard(db_session, populated, make_user):
    site = populated["site"]
    dashboard = services.get_site_dashboard(db_session, site_id=site.id, user=populated["manager"])

    assert dashboard.site_name == "강남 현장"
    assert dashboard.inventory_status == {"normal": 1, "low": 1, "out_of_stock": 1}
    assert [r.work_date for r in dashboard.recent_reports] == [date(2024, 3, 4), date(2024, 3, 1)]
    assert [r.request_number for r in dashboard.open_requests] == ["MR-1"]
    assert sorted(w.full_name for w in dashboard.assigned_workers) == ["김철수", "박소장"]

    outsider = make_user(AccountRole.WORKER)
    with pytest.raises(HTTPException) as exc:
        services.get_site_dashboard(db_session, site_id=site.id, user=outsider)
    assert exc.value.status_code == 403
