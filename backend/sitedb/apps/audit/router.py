from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sitedb.security import require_admin
from sitedb.apps.accounts.models import User
from sitedb.database import get_read_db

from . import schemas, services


router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/activity-logs", response_model=List[schemas.ActivityLogRead])
def list_activity_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_activity_logs(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
