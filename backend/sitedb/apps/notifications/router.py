from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sitedb.security import get_current_active_user, require_admin
from sitedb.apps.accounts.models import User
from sitedb.database import get_db, get_read_db

from . import models, schemas, services


router = APIRouter(prefix="/notifications", tags=["notifications"])


# ---------------------------------------------------------------------------
# Notification center
# ---------------------------------------------------------------------------


@router.get("", response_model=List[schemas.NotificationRead])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_notifications(
        db,
        user_id=current_user.id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count")
def unread_count(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return {"count": services.unread_count(db, user_id=current_user.id)}


@router.post("/mark-read")
def mark_read(
    payload: schemas.NotificationMarkRead,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    updated = services.mark_read(db, user_id=current_user.id, ids=payload.ids)
    db.commit()
    return {"updated": updated}


@router.post("/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    updated = services.mark_all_read(db, user_id=current_user.id)
    db.commit()
    return {"updated": updated}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    services.delete_notification(db, user_id=current_user.id, notification_id=notification_id)
    db.commit()
    return None


@router.post("", response_model=List[schemas.NotificationRead], status_code=status.HTTP_201_CREATED)
def send_notifications(
    payload: schemas.NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    notes = services.notify_users(
        db,
        user_ids=payload.user_ids,
        title=payload.title,
        message=payload.message,
        type=payload.type,
        action_url=payload.action_url,
        created_by=current_user.id,
    )
    db.commit()
    return notes


# ---------------------------------------------------------------------------
# Email notifications (admin)
# ---------------------------------------------------------------------------


@router.post("/email", response_model=schemas.EmailLogRead, status_code=status.HTTP_201_CREATED)
def send_email_notification(
    payload: schemas.EmailNotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    log = services.send_email_notification(db, payload, sender_id=current_user.id)
    db.commit()
    db.refresh(log)
    return log


@router.post("/email/bulk", response_model=schemas.BulkEmailResult)
def send_bulk_email_notifications(
    payload: schemas.BulkEmailCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    result = services.send_bulk_email_notifications(db, payload, sender_id=current_user.id)
    db.commit()
    return result


@router.get("/email-logs", response_model=schemas.EmailLogPage)
def list_email_logs(
    status: Optional[models.EmailStatus] = None,
    notification_type: Optional[models.EmailNotificationType] = None,
    recipient: Optional[str] = None,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.get_email_notification_history(
        db,
        status_filter=status,
        notification_type=notification_type,
        recipient=recipient,
        start=start,
        end=end,
        page=page,
        limit=limit,
    )


@router.get("/email-templates", response_model=List[schemas.EmailTemplateRead])
def list_email_templates(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_email_templates(db)


@router.put("/email-templates", response_model=schemas.EmailTemplateRead)
def upsert_email_template(
    payload: schemas.EmailTemplateUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    template = services.upsert_email_template(db, payload)
    db.commit()
    db.refresh(template)
    return template
