from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import get_current_active_user, require_admin
from sitedb.apps.accounts.models import User

from . import models, schemas, services

router = APIRouter(prefix="/sites", tags=["sites"])


@router.get("", response_model=schemas.SiteListResponse)
def list_sites(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    search: Optional[str] = None,
    status: Optional[models.SiteStatus] = None,
    sort: str = "created_at",
    descending: bool = True,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_sites(
        db,
        user=current_user,
        page=page,
        limit=limit,
        search=search,
        status_filter=status,
        sort=sort,
        descending=descending,
    )


@router.post("", response_model=schemas.SiteRead, status_code=status.HTTP_201_CREATED)
def create_site(
    payload: schemas.SiteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    site = services.create_site(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(site)
    return site


@router.post("/delete")
def delete_sites(
    payload: schemas.SiteIds,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.delete_sites(db, site_ids=payload.site_ids, actor_user_id=current_user.id)
    db.commit()
    return {"deleted": count}


@router.post("/restore")
def restore_sites(
    payload: schemas.SiteIds,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.restore_sites(db, site_ids=payload.site_ids, actor_user_id=current_user.id)
    db.commit()
    return {"restored": count}


@router.post("/purge")
def purge_sites(
    payload: schemas.SiteIds,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.purge_sites(db, site_ids=payload.site_ids, actor_user_id=current_user.id)
    db.commit()
    return {"purged": count}


@router.post("/status")
def update_site_status(
    payload: schemas.SiteStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    count = services.update_site_status(
        db,
        site_ids=payload.site_ids,
        status_value=payload.status,
        actor_user_id=current_user.id,
    )
    db.commit()
    return {"updated": count}


@router.get("/{site_id}", response_model=schemas.SiteRead)
def get_site(
    site_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    site = services.get_site(db, site_id)
    services.ensure_site_access(db, current_user, site)
    return site


@router.put("/{site_id}", response_model=schemas.SiteRead)
def update_site(
    site_id: str,
    payload: schemas.SiteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    site = services.update_site(db, site_id=site_id, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(site)
    return site


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@router.get("/{site_id}/assignments", response_model=List[schemas.SiteAssignmentRead])
def get_site_assignments(
    site_id: str,
    active_only: bool = True,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    services.ensure_site_access(db, current_user, services.get_site(db, site_id))
    return services.get_site_assignments(db, site_id=site_id, active_only=active_only)


@router.post(
    "/{site_id}/assignments",
    response_model=schemas.SiteAssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def assign_user_to_site(
    site_id: str,
    payload: schemas.SiteAssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    assignment = services.assign_user_to_site(
        db,
        site_id=site_id,
        user_id=payload.user_id,
        role=payload.role,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(assignment)
    return assignment


@router.delete("/{site_id}/assignments/{user_id}", response_model=schemas.SiteAssignmentRead)
def remove_user_from_site(
    site_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    assignment = services.remove_user_from_site(
        db,
        site_id=site_id,
        user_id=user_id,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(assignment)
    return assignment


@router.put("/{site_id}/assignments/{user_id}/role", response_model=schemas.SiteAssignmentRead)
def update_site_assignment_role(
    site_id: str,
    user_id: str,
    payload: schemas.SiteAssignmentRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    assignment = services.update_site_assignment_role(
        db,
        site_id=site_id,
        user_id=user_id,
        role=payload.role,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(assignment)
    return assignment


@router.get("/{site_id}/available-users", response_model=List[schemas.AvailableUser])
def search_available_users(
    site_id: str,
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.search_available_users(db, site_id=site_id, q=q, limit=limit)
