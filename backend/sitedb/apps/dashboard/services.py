from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from sitedb.apps.accounts import models as account_models
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.materials import models as material_models
from sitedb.apps.materials.services import inventory_status
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.security.monitor import get_security_monitor
from sitedb.apps.sites import models as site_models
from sitedb.apps.sites import services as site_services
from sitedb.apps.validation.rules import KST

from . import schemas

RECENT_REPORT_LIMIT = 5
OPEN_REQUEST_STATUSES = (
    material_models.MaterialRequestStatus.PENDING,
    material_models.MaterialRequestStatus.APPROVED,
    material_models.MaterialRequestStatus.ORDERED,
)


def _today():
    return datetime.now(KST).date()


def get_admin_dashboard(
    db: Session, *, user: account_models.User, now: Optional[datetime] = None
) -> schemas.AdminDashboard:
    active_sites = (
        db.query(func.count(site_models.Site.id))
        .filter(
            site_models.Site.status == site_models.SiteStatus.ACTIVE,
            site_models.Site.is_deleted.is_(False),
        )
        .scalar()
    )
    role_rows = (
        db.query(account_models.User.role, func.count(account_models.User.id))
        .filter(account_models.User.is_active.is_(True))
        .group_by(account_models.User.role)
        .all()
    )
    pending_requests = (
        db.query(func.count(material_models.MaterialRequest.id))
        .filter(material_models.MaterialRequest.status == material_models.MaterialRequestStatus.PENDING)
        .scalar()
    )
    awaiting = (
        db.query(func.count(report_models.DailyReport.id))
        .filter(report_models.DailyReport.status == report_models.DailyReportStatus.SUBMITTED)
        .scalar()
    )
    today = now.astimezone(KST).date() if now else _today()
    todays_reports = (
        db.query(func.count(report_models.DailyReport.id))
        .filter(report_models.DailyReport.work_date == today)
        .scalar()
    )

    stock = Counter(
        inventory_status(row.current_stock or 0.0, row.minimum_stock or 0.0)
        for row in db.query(material_models.MaterialInventory).all()
    )
    metrics = get_security_monitor().get_security_metrics(db, now=now)

    return schemas.AdminDashboard(
        active_sites=active_sites or 0,
        active_users_by_role={role.value: count for role, count in role_rows},
        pending_material_requests=pending_requests or 0,
        reports_awaiting_approval=awaiting or 0,
        low_stock_items=stock.get("low", 0),
        out_of_stock_items=stock.get("out_of_stock", 0),
        todays_reports=todays_reports or 0,
        unread_notifications=notification_services.unread_count(db, user_id=user.id),
        active_security_threats=metrics.active_threats,
    )


def get_site_dashboard(db: Session, *, site_id: str, user: account_models.User) -> schemas.SiteDashboard:
    site = site_services.get_site(db, site_id)
    site_services.ensure_site_access(db, user, site)

    stock = Counter(
        inventory_status(row.current_stock or 0.0, row.minimum_stock or 0.0)
        for row in db.query(material_models.MaterialInventory)
        .filter(material_models.MaterialInventory.site_id == site.id)
        .all()
    )
    reports = (
        db.query(report_models.DailyReport)
        .filter(report_models.DailyReport.site_id == site.id)
        .order_by(report_models.DailyReport.work_date.desc(), report_models.DailyReport.created_at.desc())
        .limit(RECENT_REPORT_LIMIT)
        .all()
    )
    requests = (
        db.query(material_models.MaterialRequest)
        .filter(
            material_models.MaterialRequest.site_id == site.id,
            material_models.MaterialRequest.status.in_(OPEN_REQUEST_STATUSES),
        )
        .order_by(material_models.MaterialRequest.request_date.desc())
        .all()
    )
    assignments = (
        db.query(site_models.SiteAssignment)
        .filter(
            site_models.SiteAssignment.site_id == site.id,
            site_models.SiteAssignment.is_active.is_(True),
        )
        .all()
    )

    return schemas.SiteDashboard(
        site_id=site.id,
        site_name=site.name,
        site_status=site.status.value,
        inventory_status={key: stock.get(key, 0) for key in ("normal", "low", "out_of_stock")},
        recent_reports=[
            schemas.RecentReport(
                id=r.id,
                work_date=r.work_date,
                status=r.status.value,
                total_workers=r.total_workers or 0,
                member_name=r.member_name,
                process_type=r.process_type,
            )
            for r in reports
        ],
        open_requests=[
            schemas.OpenRequest(
                id=r.id,
                request_number=r.request_number,
                status=r.status.value,
                priority=r.priority.value,
                request_date=r.request_date,
            )
            for r in requests
        ],
        assigned_workers=[
            schemas.AssignedWorker(user_id=a.user_id, full_name=a.user_full_name, role=a.role.value)
            for a in assignments
        ],
    )
