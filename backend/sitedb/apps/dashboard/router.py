from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sitedb.database import get_read_db
from sitedb.security import get_current_active_user, require_admin
from sitedb.apps.accounts.models import User

from . import schemas, services

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/admin", response_model=schemas.AdminDashboard)
def admin_dashboard(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.get_admin_dashboard(db, user=current_user)


@router.get("/sites/{site_id}", response_model=schemas.SiteDashboard)
def site_dashboard(
    site_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_site_dashboard(db, site_id=site_id, user=current_user)
