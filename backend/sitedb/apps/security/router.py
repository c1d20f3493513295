from __future__ import annotations

from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import require_admin
from sitedb.apps.accounts.models import User

from . import schemas, services
from .monitor import get_security_monitor

router = APIRouter(prefix="/security", tags=["security"])


@router.get("/metrics", response_model=schemas.SecurityMetricsRead)
def security_metrics(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return get_security_monitor().get_security_metrics(db)


@router.get("/alerts", response_model=List[schemas.SecurityAlertRead])
def active_alerts(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return get_security_monitor().get_active_alerts(db)


@router.post("/alerts/{alert_id}/resolve", status_code=status.HTTP_204_NO_CONTENT)
def resolve_alert(
    alert_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    get_security_monitor().resolve_alert(db, alert_id=alert_id, resolved_by=current_user.id)
    db.commit()


@router.get("/blocked-ips", response_model=List[schemas.BlockedIPRead])
def blocked_ips(
    include_expired: bool = False,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_admin),
):
    return services.list_blocked_ips(db, include_expired=include_expired)


@router.post("/blocked-ips", response_model=schemas.BlockedIPRead, status_code=status.HTTP_201_CREATED)
def block_ip(
    payload: schemas.BlockIPRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    duration = timedelta(minutes=payload.duration_minutes) if payload.duration_minutes else None
    row = services.block_ip(
        db,
        ip_address=payload.ip_address,
        reason=payload.reason,
        blocked_by=current_user.id,
        duration=duration,
    )
    db.commit()
    db.refresh(row)
    return row


@router.delete("/blocked-ips/{ip_address}", status_code=status.HTTP_204_NO_CONTENT)
def unblock_ip(
    ip_address: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    services.unblock_ip(db, ip_address=ip_address, actor_user_id=current_user.id)
    db.commit()


@router.post("/checks/run", response_model=schemas.SecurityCheckResult)
def run_checks(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    monitor = get_security_monitor()
    raised = monitor.perform_security_checks(db)
    handled = monitor.process_alert_queue(db)
    db.commit()
    return {"alerts_raised": raised, "alerts_handled": handled}
