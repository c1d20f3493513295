from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


def create_activity_log(
    db: Session,
    *,
    data: schemas.ActivityLogCreate,
) -> models.ActivityLog:
    entry = models.ActivityLog(
        user_id=data.user_id,
        user_email=data.user_email,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        details=data.details or {},
        severity=data.severity,
        ip_address=data.ip_address,
        user_agent=data.user_agent,
    )
    if data.created_at is not None:
        entry.created_at = data.created_at
    db.add(entry)
    db.flush()
    return entry


def log_event(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: Optional[str],
    action: str,
    details: Optional[dict] = None,
    severity: models.ActivitySeverity = models.ActivitySeverity.INFO,
    actor_email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    critical: bool = False,
) -> Optional[models.ActivityLog]:
    """
    Best-effort activity logger.
    - For critical actions (payroll approval, exports, IP blocks), raise on failure.
    - For non-critical actions, log warning and continue.
    """
    try:
        return create_activity_log(
            db,
            data=schemas.ActivityLogCreate(
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                action=action,
                user_id=actor_user_id,
                user_email=actor_email,
                details=details,
                severity=severity,
                ip_address=ip_address,
                user_agent=user_agent,
            ),
        )
    except Exception:
        logger.warning(
            "Failed to log activity event",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def record_login_attempt(
    db: Session,
    *,
    email: str,
    user_id: Optional[str],
    success: bool,
    ip_address: Optional[str],
    user_agent: Optional[str],
    reason: Optional[str] = None,
) -> Optional[models.ActivityLog]:
    details: dict = {"success": success}
    if reason:
        details["reason"] = reason
    return log_event(
        db,
        actor_user_id=user_id,
        actor_email=email,
        entity_type="auth",
        entity_id=user_id,
        action="LOGIN",
        details=details,
        severity=models.ActivitySeverity.INFO if success else models.ActivitySeverity.WARN,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def list_activity_logs(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> Sequence[models.ActivityLog]:
    query = db.query(models.ActivityLog)
    if entity_type:
        query = query.filter(models.ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.ActivityLog.entity_id == entity_id)
    if action:
        query = query.filter(models.ActivityLog.action == action)
    if user_id:
        query = query.filter(models.ActivityLog.user_id == user_id)
    if start:
        query = query.filter(models.ActivityLog.created_at >= start)
    if end:
        query = query.filter(models.ActivityLog.created_at <= end)
    return (
        query.order_by(models.ActivityLog.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
