from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivitySeverity

from . import models

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_DURATION = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# IP block list
# ---------------------------------------------------------------------------


def is_ip_blocked(db: Session, ip_address: str, *, now: Optional[datetime] = None) -> bool:
    now = now or _utcnow()
    row = (
        db.query(models.BlockedIP)
        .filter(
            models.BlockedIP.ip_address == ip_address,
            models.BlockedIP.is_active.is_(True),
        )
        .first()
    )
    if row is None:
        return False
    if row.expires_at is not None and _as_utc(row.expires_at) <= now:
        return False
    return True


def block_ip(
    db: Session,
    *,
    ip_address: str,
    reason: str,
    blocked_by: str = "system",
    duration: Optional[timedelta] = DEFAULT_BLOCK_DURATION,
    now: Optional[datetime] = None,
) -> models.BlockedIP:
    """
    Record the block in the activity log and upsert the block-list row.
    A duration of None blocks until manually lifted.
    """
    now = now or _utcnow()
    expires_at = now + duration if duration is not None else None

    audit_services.log_event(
        db,
        actor_user_id=None if blocked_by == "system" else blocked_by,
        entity_type="security_action",
        entity_id=ip_address,
        action="IP_BLOCKED",
        details={
            "ip_address": ip_address,
            "reason": reason,
            "blocked_by": blocked_by,
            "expires_at": expires_at.isoformat() if expires_at else None,
        },
        severity=ActivitySeverity.WARN,
        ip_address=ip_address,
        critical=True,
    )

    row = db.query(models.BlockedIP).filter(models.BlockedIP.ip_address == ip_address).first()
    if row is None:
        row = models.BlockedIP(ip_address=ip_address)
    row.reason = reason
    row.blocked_by = blocked_by
    row.blocked_at = now
    row.expires_at = expires_at
    row.is_active = True
    db.add(row)
    db.flush()

    logger.warning(
        "IP address blocked",
        extra={"ip_address": ip_address, "reason": reason, "blocked_by": blocked_by},
    )
    return row


def unblock_ip(db: Session, *, ip_address: str, actor_user_id: Optional[str] = None) -> models.BlockedIP:
    row = (
        db.query(models.BlockedIP)
        .filter(
            models.BlockedIP.ip_address == ip_address,
            models.BlockedIP.is_active.is_(True),
        )
        .first()
    )
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="IP address is not blocked.")
    row.is_active = False
    db.add(row)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="security_action",
        entity_id=ip_address,
        action="IP_UNBLOCKED",
        details={"ip_address": ip_address},
        ip_address=ip_address,
    )
    return row


def list_blocked_ips(db: Session, *, include_expired: bool = False, now: Optional[datetime] = None) -> List[models.BlockedIP]:
    now = now or _utcnow()
    rows = (
        db.query(models.BlockedIP)
        .filter(models.BlockedIP.is_active.is_(True))
        .order_by(models.BlockedIP.blocked_at.desc())
        .all()
    )
    if include_expired:
        return rows
    return [r for r in rows if r.expires_at is None or _as_utc(r.expires_at) > now]


# ---------------------------------------------------------------------------
# Data exports
# ---------------------------------------------------------------------------


def record_data_export(
    db: Session,
    *,
    user_id: Optional[str],
    export_type: str,
    file_size_bytes: int,
    ip_address: Optional[str] = None,
) -> models.DataExport:
    export = models.DataExport(
        user_id=user_id,
        export_type=export_type,
        file_size_bytes=file_size_bytes,
    )
    db.add(export)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user_id,
        entity_type="data_export",
        entity_id=export.id,
        action="EXPORT",
        details={"export_type": export_type, "file_size_bytes": file_size_bytes},
        ip_address=ip_address,
    )
    return export
