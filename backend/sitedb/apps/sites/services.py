from __future__ import annotations

from datetime import date
import logging
import math
from typing import Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitedb.security import is_admin, is_restricted
from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivitySeverity

from . import models, schemas

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "name": models.Site.name,
    "start_date": models.Site.start_date,
    "created_at": models.Site.created_at,
    "status": models.Site.status,
}


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _validate_dates(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date cannot be before start_date.",
        )


# ---------------------------------------------------------------------------
# Access helpers
# ---------------------------------------------------------------------------


def user_site_ids(db: Session, user: account_models.User) -> List[str]:
    rows = (
        db.query(models.SiteAssignment.site_id)
        .filter(
            models.SiteAssignment.user_id == user.id,
            models.SiteAssignment.is_active.is_(True),
        )
        .all()
    )
    return [row.site_id for row in rows]


def is_assigned(db: Session, *, user_id: str, site_id: str) -> bool:
    return (
        db.query(models.SiteAssignment.id)
        .filter(
            models.SiteAssignment.user_id == user_id,
            models.SiteAssignment.site_id == site_id,
            models.SiteAssignment.is_active.is_(True),
        )
        .first()
        is not None
    )


def ensure_site_access(db: Session, user: account_models.User, site: models.Site) -> None:
    """
    Admins see every site, partner accounts see their organisation's sites,
    everybody else needs an active assignment.
    """
    if is_admin(user):
        return
    if is_restricted(user):
        if site.organization_id and site.organization_id == user.organization_id:
            return
    elif is_assigned(db, user_id=user.id, site_id=site.id):
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this site.")


def get_site_manager_ids(db: Session, site_id: str) -> List[str]:
    rows = (
        db.query(models.SiteAssignment.user_id)
        .join(account_models.User, account_models.User.id == models.SiteAssignment.user_id)
        .filter(
            models.SiteAssignment.site_id == site_id,
            models.SiteAssignment.is_active.is_(True),
            account_models.User.is_active.is_(True),
            or_(
                models.SiteAssignment.role == models.SiteAssignmentRole.SITE_MANAGER,
                account_models.User.role == account_models.AccountRole.SITE_MANAGER,
            ),
        )
        .all()
    )
    return [row.user_id for row in rows]


# ---------------------------------------------------------------------------
# Sites
# ---------------------------------------------------------------------------


def get_site(db: Session, site_id: str, *, include_deleted: bool = False) -> models.Site:
    query = db.query(models.Site).filter(models.Site.id == site_id)
    if not include_deleted:
        query = query.filter(models.Site.is_deleted.is_(False))
    site = query.first()
    if not site:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found.")
    return site


def list_sites(
    db: Session,
    *,
    user: Optional[account_models.User] = None,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    status_filter: Optional[models.SiteStatus] = None,
    sort: str = "created_at",
    descending: bool = True,
) -> dict:
    query = db.query(models.Site).filter(models.Site.is_deleted.is_(False))

    if user is not None and is_restricted(user):
        query = query.filter(models.Site.organization_id == user.organization_id)

    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Site.name).like(pattern),
                func.lower(models.Site.address).like(pattern),
            )
        )
    if status_filter is not None:
        query = query.filter(models.Site.status == status_filter)

    column = SORT_FIELDS.get(sort, models.Site.created_at)
    total = query.count()
    items = (
        query.order_by(column.desc() if descending else column.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "total": total, "pages": _pages(total, limit)}


def create_site(
    db: Session,
    *,
    payload: schemas.SiteCreate,
    actor_user_id: Optional[str] = None,
) -> models.Site:
    _validate_dates(payload.start_date, payload.end_date)
    site = models.Site(**payload.model_dump(), created_by=actor_user_id)
    db.add(site)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=site.id,
        action="CREATE",
        details={"name": site.name},
    )
    return site


def update_site(
    db: Session,
    *,
    site_id: str,
    payload: schemas.SiteUpdate,
    actor_user_id: Optional[str] = None,
) -> models.Site:
    site = get_site(db, site_id)
    changes = payload.model_dump(exclude_unset=True)
    _validate_dates(
        changes.get("start_date", site.start_date),
        changes.get("end_date", site.end_date),
    )
    for field, value in changes.items():
        setattr(site, field, value)
    db.add(site)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=site.id,
        action="UPDATE",
        details={key: str(value) for key, value in changes.items()},
    )
    return site


def _sites_by_ids(db: Session, site_ids: Iterable[str]) -> List[models.Site]:
    return db.query(models.Site).filter(models.Site.id.in_(list(site_ids))).all()


def delete_sites(db: Session, *, site_ids: Iterable[str], actor_user_id: Optional[str] = None) -> int:
    sites = [s for s in _sites_by_ids(db, site_ids) if not s.is_deleted]
    for site in sites:
        site.is_deleted = True
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=None,
        action="DELETE",
        details={"site_ids": [s.id for s in sites]},
    )
    return len(sites)


def restore_sites(db: Session, *, site_ids: Iterable[str], actor_user_id: Optional[str] = None) -> int:
    sites = [s for s in _sites_by_ids(db, site_ids) if s.is_deleted]
    for site in sites:
        site.is_deleted = False
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=None,
        action="RESTORE",
        details={"site_ids": [s.id for s in sites]},
    )
    return len(sites)


def purge_sites(db: Session, *, site_ids: Iterable[str], actor_user_id: Optional[str] = None) -> int:
    ids = list(site_ids)
    active = (
        db.query(models.SiteAssignment.site_id)
        .filter(
            models.SiteAssignment.site_id.in_(ids),
            models.SiteAssignment.is_active.is_(True),
        )
        .first()
    )
    if active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Site still has active assignments.",
        )

    sites = _sites_by_ids(db, ids)
    for site in sites:
        db.delete(site)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=None,
        action="PURGE",
        details={"site_ids": [s.id for s in sites]},
        severity=ActivitySeverity.WARN,
    )
    return len(sites)


def update_site_status(
    db: Session,
    *,
    site_ids: Iterable[str],
    status_value: models.SiteStatus,
    actor_user_id: Optional[str] = None,
) -> int:
    sites = [s for s in _sites_by_ids(db, site_ids) if not s.is_deleted]
    for site in sites:
        site.status = status_value
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site",
        entity_id=None,
        action="STATUS_CHANGE",
        details={"site_ids": [s.id for s in sites], "status": status_value.value},
    )
    return len(sites)


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


def get_site_assignments(
    db: Session,
    *,
    site_id: str,
    active_only: bool = True,
) -> List[models.SiteAssignment]:
    get_site(db, site_id)
    query = db.query(models.SiteAssignment).filter(models.SiteAssignment.site_id == site_id)
    if active_only:
        query = query.filter(models.SiteAssignment.is_active.is_(True))
    return query.order_by(models.SiteAssignment.assigned_date.desc()).all()


def assign_user_to_site(
    db: Session,
    *,
    site_id: str,
    user_id: str,
    role: models.SiteAssignmentRole = models.SiteAssignmentRole.WORKER,
    actor_user_id: Optional[str] = None,
) -> models.SiteAssignment:
    get_site(db, site_id)
    user = db.query(account_models.User).filter(account_models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    assignment = (
        db.query(models.SiteAssignment)
        .filter(
            models.SiteAssignment.site_id == site_id,
            models.SiteAssignment.user_id == user_id,
        )
        .order_by(models.SiteAssignment.created_at.desc())
        .first()
    )
    if assignment is None:
        assignment = models.SiteAssignment(site_id=site_id, user_id=user_id)
    assignment.role = role
    assignment.is_active = True
    assignment.assigned_date = date.today()
    assignment.unassigned_date = None
    db.add(assignment)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site_assignment",
        entity_id=assignment.id,
        action="ASSIGN",
        details={"site_id": site_id, "user_id": user_id, "role": role.value},
    )
    return assignment


def _active_assignment_or_404(db: Session, *, site_id: str, user_id: str) -> models.SiteAssignment:
    assignment = (
        db.query(models.SiteAssignment)
        .filter(
            models.SiteAssignment.site_id == site_id,
            models.SiteAssignment.user_id == user_id,
            models.SiteAssignment.is_active.is_(True),
        )
        .first()
    )
    if not assignment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found.")
    return assignment


def remove_user_from_site(
    db: Session,
    *,
    site_id: str,
    user_id: str,
    actor_user_id: Optional[str] = None,
) -> models.SiteAssignment:
    assignment = _active_assignment_or_404(db, site_id=site_id, user_id=user_id)
    assignment.is_active = False
    assignment.unassigned_date = date.today()
    db.add(assignment)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site_assignment",
        entity_id=assignment.id,
        action="UNASSIGN",
        details={"site_id": site_id, "user_id": user_id},
    )
    return assignment


def update_site_assignment_role(
    db: Session,
    *,
    site_id: str,
    user_id: str,
    role: models.SiteAssignmentRole,
    actor_user_id: Optional[str] = None,
) -> models.SiteAssignment:
    assignment = _active_assignment_or_404(db, site_id=site_id, user_id=user_id)
    assignment.role = role
    db.add(assignment)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="site_assignment",
        entity_id=assignment.id,
        action="ROLE_CHANGE",
        details={"role": role.value},
    )
    return assignment


def search_available_users(
    db: Session,
    *,
    site_id: str,
    q: Optional[str] = None,
    limit: int = 20,
) -> List[account_models.User]:
    assigned = (
        db.query(models.SiteAssignment.user_id)
        .filter(
            models.SiteAssignment.site_id == site_id,
            models.SiteAssignment.is_active.is_(True),
        )
    )
    query = db.query(account_models.User).filter(
        account_models.User.is_active.is_(True),
        ~account_models.User.id.in_(assigned),
    )
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(account_models.User.full_name).like(pattern),
                func.lower(account_models.User.email).like(pattern),
            )
        )
    return query.order_by(account_models.User.full_name.asc()).limit(limit).all()
