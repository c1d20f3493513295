"""
Production security monitor.

Polls the activity log and export ledger for attack patterns, raises
in-memory alerts, and turns queued alerts into persisted activity rows,
webhook posts and automatic responses (IP blocks, admin notifications).
"""

from __future__ import annotations

import enum
import json
import logging
import os
import threading
import urllib.request
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivityLog, ActivitySeverity
from sitedb.apps.audit.schemas import ActivityLogCreate
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.notifications.models import NotificationType
from sitedb.utils.identifiers import generate_uuid7

from . import models, services
from .tracker import ErrorTracker, get_error_tracker

logger = logging.getLogger(__name__)


class ThreatLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SecurityEventType(str, enum.Enum):
    FAILED_LOGIN = "FAILED_LOGIN"
    SUSPICIOUS_IP = "SUSPICIOUS_IP"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    DATA_EXPORT_LARGE = "DATA_EXPORT_LARGE"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
    UNUSUAL_ACTIVITY = "UNUSUAL_ACTIVITY"
    BRUTE_FORCE_ATTACK = "BRUTE_FORCE_ATTACK"
    SQL_INJECTION_ATTEMPT = "SQL_INJECTION_ATTEMPT"
    XSS_ATTEMPT = "XSS_ATTEMPT"


FAILED_LOGINS_PER_HOUR = 5
FAILED_LOGINS_PER_DAY = 20
REQUESTS_PER_MINUTE = 60
CONCURRENT_SESSIONS = 3
DATA_EXPORT_SIZE_MB = 100
SUSPICIOUS_IP_REQUESTS = 100
UNUSUAL_ACTIVITY_THRESHOLD = 50

BRUTE_FORCE_CRITICAL_ATTEMPTS = 10
LARGE_EXPORT_HIGH_MB = 500
MULTIPLE_USERS_PER_IP = 5
HIGH_RISK_ACTION_LIMIT = 5
SPIKE_FACTOR = 5

HIGH_RISK_ACTIONS = {"DELETE", "EXPORT", "ROLE_CHANGE"}
LOCAL_ADDRESSES = {"127.0.0.1"}
# The monitor's own rows must not feed back into the request counts.
MONITOR_ENTITY_TYPES = ("security_alert", "security_action")

ALERT_ENTITY = "security_alert"
ALERT_ACTION = "SECURITY_ALERT"
RESOLVED_ACTION = "RESOLVED"

AUTO_BLOCK_DURATION = timedelta(hours=1)

TRACKER_LEVELS = {
    ThreatLevel.LOW: "info",
    ThreatLevel.MEDIUM: "warning",
    ThreatLevel.HIGH: "error",
    ThreatLevel.CRITICAL: "fatal",
}

SEVERITY_FOR_THREAT = {
    ThreatLevel.LOW: ActivitySeverity.INFO,
    ThreatLevel.MEDIUM: ActivitySeverity.WARN,
    ThreatLevel.HIGH: ActivitySeverity.ERROR,
    ThreatLevel.CRITICAL: ActivitySeverity.CRITICAL,
}

THREAT_FOR_SEVERITY = {severity: level for level, severity in SEVERITY_FOR_THREAT.items()}

ALERTING_SEVERITIES = (ActivitySeverity.WARN, ActivitySeverity.ERROR, ActivitySeverity.CRITICAL)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class SecurityAlert:
    event_type: SecurityEventType
    threat_level: ThreatLevel
    id: str = field(default_factory=generate_uuid7)
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    resolved: bool = False


@dataclass
class SecurityMetrics:
    failed_logins_last_hour: int = 0
    failed_logins_last_24h: int = 0
    suspicious_ips: int = 0
    active_threats: int = 0
    resolved_threats_today: int = 0
    avg_threat_resolution_time: float = 0.0


def _post_webhook(url: str, payload: dict) -> int:
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")
    with urllib.request.urlopen(req, timeout=10) as resp:
        return resp.status


class SecurityMonitor:
    def __init__(self, *, tracker: Optional[ErrorTracker] = None, webhook_url: Optional[str] = None):
        if tracker is None:
            tracker, _ = get_error_tracker()
        self.tracker = tracker
        self.webhook_url = webhook_url
        self.alert_queue: List[SecurityAlert] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _failed_logins(self, db: Session, since: datetime) -> List[ActivityLog]:
        rows = (
            db.query(ActivityLog)
            .filter(ActivityLog.action == "LOGIN", ActivityLog.created_at >= since)
            .all()
        )
        return [row for row in rows if (row.details or {}).get("success") is False]

    def _activity_since(self, db: Session, since: datetime, until: Optional[datetime] = None) -> List[ActivityLog]:
        query = db.query(ActivityLog).filter(
            ActivityLog.created_at >= since,
            ActivityLog.entity_type.notin_(MONITOR_ENTITY_TYPES),
        )
        if until is not None:
            query = query.filter(ActivityLog.created_at < until)
        return query.all()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_failed_logins(self, db: Session, now: datetime) -> List[SecurityAlert]:
        rows = self._failed_logins(db, now - timedelta(hours=1))
        alerts: List[SecurityAlert] = []

        by_ip = Counter(row.ip_address for row in rows if row.ip_address)
        for ip, attempts in by_ip.items():
            if attempts < FAILED_LOGINS_PER_HOUR:
                continue
            level = ThreatLevel.CRITICAL if attempts >= BRUTE_FORCE_CRITICAL_ATTEMPTS else ThreatLevel.HIGH
            alerts.append(
                self.create_security_alert(
                    SecurityEventType.BRUTE_FORCE_ATTACK,
                    level,
                    ip_address=ip,
                    details={"attempts": attempts, "timeframe": "1_hour", "action_required": "IP_BLOCK"},
                    now=now,
                )
            )

        by_email: Dict[str, List[ActivityLog]] = defaultdict(list)
        for row in rows:
            if row.user_email:
                by_email[row.user_email].append(row)
        for email, attempts in by_email.items():
            if len(attempts) < FAILED_LOGINS_PER_HOUR:
                continue
            level = ThreatLevel.HIGH if len(attempts) >= BRUTE_FORCE_CRITICAL_ATTEMPTS else ThreatLevel.MEDIUM
            alerts.append(
                self.create_security_alert(
                    SecurityEventType.FAILED_LOGIN,
                    level,
                    user_id=next((row.user_id for row in attempts if row.user_id), None),
                    details={
                        "email": email,
                        "attempts": len(attempts),
                        "timeframe": "1_hour",
                        "action_required": "ACCOUNT_LOCK",
                    },
                    now=now,
                )
            )
        return alerts

    def check_failed_logins_daily(self, db: Session, now: datetime) -> List[SecurityAlert]:
        rows = self._failed_logins(db, now - timedelta(hours=24))
        by_email = Counter(row.user_email for row in rows if row.user_email)
        return [
            self.create_security_alert(
                SecurityEventType.FAILED_LOGIN,
                ThreatLevel.HIGH,
                details={"email": email, "attempts": attempts, "timeframe": "24_hours"},
                now=now,
            )
            for email, attempts in by_email.items()
            if attempts >= FAILED_LOGINS_PER_DAY
        ]

    def check_suspicious_ips(self, db: Session, now: datetime) -> List[SecurityAlert]:
        rows = [
            row
            for row in self._activity_since(db, now - timedelta(hours=24))
            if row.ip_address and row.ip_address not in LOCAL_ADDRESSES
        ]
        by_ip: Dict[str, List[ActivityLog]] = defaultdict(list)
        for row in rows:
            by_ip[row.ip_address].append(row)

        alerts: List[SecurityAlert] = []
        for ip, activity in by_ip.items():
            users = {row.user_id for row in activity if row.user_id}
            if len(users) > MULTIPLE_USERS_PER_IP:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.SUSPICIOUS_IP,
                        ThreatLevel.MEDIUM,
                        ip_address=ip,
                        details={"pattern": "MULTIPLE_USERS_SAME_IP", "unique_users": len(users)},
                        now=now,
                    )
                )
            if len(activity) > SUSPICIOUS_IP_REQUESTS:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.RATE_LIMIT_EXCEEDED,
                        ThreatLevel.HIGH,
                        ip_address=ip,
                        details={"pattern": "HIGH_REQUEST_VOLUME", "requests": len(activity)},
                        now=now,
                    )
                )
            risky = sum(1 for row in activity if (row.action or "").upper() in HIGH_RISK_ACTIONS)
            if risky > HIGH_RISK_ACTION_LIMIT:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.SUSPICIOUS_IP,
                        ThreatLevel.HIGH,
                        ip_address=ip,
                        details={"pattern": "HIGH_RISK_ACTIONS", "high_risk_actions": risky},
                        now=now,
                    )
                )
        return alerts

    def check_unusual_activity(self, db: Session, now: datetime) -> List[SecurityAlert]:
        day_ago = now - timedelta(days=1)
        baseline_rows = self._activity_since(db, now - timedelta(days=7), until=day_ago)
        recent_rows = self._activity_since(db, day_ago)

        baseline_counts = Counter(row.user_id for row in baseline_rows if row.user_id)
        recent_counts = Counter(row.user_id for row in recent_rows if row.user_id)

        alerts: List[SecurityAlert] = []
        for user_id, recent in recent_counts.items():
            baseline = baseline_counts.get(user_id, 0) / 6
            if recent > baseline * SPIKE_FACTOR and recent > UNUSUAL_ACTIVITY_THRESHOLD:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.UNUSUAL_ACTIVITY,
                        ThreatLevel.MEDIUM,
                        user_id=user_id,
                        details={
                            "recent_activity": recent,
                            "baseline_daily": round(baseline, 2),
                            "spike_ratio": round(recent / baseline, 2) if baseline else None,
                        },
                        now=now,
                    )
                )
        return alerts

    def check_large_data_exports(self, db: Session, now: datetime) -> List[SecurityAlert]:
        limit = DATA_EXPORT_SIZE_MB * 1024 * 1024
        rows = (
            db.query(models.DataExport)
            .filter(
                models.DataExport.started_at >= now - timedelta(hours=24),
                models.DataExport.file_size_bytes > limit,
            )
            .all()
        )
        alerts: List[SecurityAlert] = []
        for export in rows:
            size_mb = export.file_size_bytes / (1024 * 1024)
            level = ThreatLevel.HIGH if size_mb > LARGE_EXPORT_HIGH_MB else ThreatLevel.MEDIUM
            alerts.append(
                self.create_security_alert(
                    SecurityEventType.DATA_EXPORT_LARGE,
                    level,
                    user_id=export.user_id,
                    details={
                        "export_id": export.id,
                        "export_type": export.export_type,
                        "file_size_mb": round(size_mb, 2),
                        "requires_review": True,
                    },
                    now=now,
                )
            )
        return alerts

    def check_concurrent_sessions(self, db: Session, now: datetime) -> List[SecurityAlert]:
        rows = (
            db.query(ActivityLog)
            .filter(ActivityLog.action == "LOGIN", ActivityLog.created_at >= now - timedelta(hours=1))
            .all()
        )
        # Failed attempts against a known account count as sessions too.
        sessions: Dict[str, set] = defaultdict(set)
        for row in rows:
            if row.user_id:
                sessions[row.user_id].add(f"{row.ip_address}:{row.user_agent}")

        return [
            self.create_security_alert(
                SecurityEventType.UNUSUAL_ACTIVITY,
                ThreatLevel.MEDIUM,
                user_id=user_id,
                details={"pattern": "MULTIPLE_CONCURRENT_SESSIONS", "sessions": len(keys)},
                now=now,
            )
            for user_id, keys in sessions.items()
            if len(keys) > CONCURRENT_SESSIONS
        ]

    def check_rate_limits(self, db: Session, now: datetime) -> List[SecurityAlert]:
        rows = self._activity_since(db, now - timedelta(minutes=1))
        alerts: List[SecurityAlert] = []
        for ip, count in Counter(row.ip_address for row in rows if row.ip_address).items():
            if count > REQUESTS_PER_MINUTE:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.RATE_LIMIT_EXCEEDED,
                        ThreatLevel.MEDIUM,
                        ip_address=ip,
                        details={"requests_per_minute": count, "scope": "ip"},
                        now=now,
                    )
                )
        for user_id, count in Counter(row.user_id for row in rows if row.user_id).items():
            if count > REQUESTS_PER_MINUTE:
                alerts.append(
                    self.create_security_alert(
                        SecurityEventType.RATE_LIMIT_EXCEEDED,
                        ThreatLevel.MEDIUM,
                        user_id=user_id,
                        details={"requests_per_minute": count, "scope": "user"},
                        now=now,
                    )
                )
        return alerts

    @property
    def checks(self) -> List[Tuple[str, Callable[[Session, datetime], List[SecurityAlert]]]]:
        return [
            ("failed_logins", self.check_failed_logins),
            ("failed_logins_daily", self.check_failed_logins_daily),
            ("suspicious_ips", self.check_suspicious_ips),
            ("unusual_activity", self.check_unusual_activity),
            ("large_data_exports", self.check_large_data_exports),
            ("concurrent_sessions", self.check_concurrent_sessions),
            ("rate_limits", self.check_rate_limits),
        ]

    def perform_security_checks(self, db: Session, *, now: Optional[datetime] = None) -> int:
        """Run every check. Returns the number of alerts raised."""
        now = now or _utcnow()
        raised = 0
        for name, check in self.checks:
            try:
                raised += len(check(db, now))
            except Exception as exc:  # noqa: BLE001
                db.rollback()
                logger.exception("Security check failed", extra={"check": name})
                self.tracker.capture_exception(exc, tags={"security_check": name})
        return raised

    # ------------------------------------------------------------------
    # Alerting
    # ------------------------------------------------------------------

    def create_security_alert(
        self,
        event_type: SecurityEventType,
        threat_level: ThreatLevel,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> SecurityAlert:
        alert = SecurityAlert(
            event_type=event_type,
            threat_level=threat_level,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details or {},
            created_at=now or _utcnow(),
        )
        with self._lock:
            self.alert_queue.append(alert)

        self.tracker.capture_message(
            f"Security Alert: {event_type.value}",
            level=TRACKER_LEVELS[threat_level],
            tags={"security_event": event_type.value, "threat_level": threat_level.value},
            extra={
                "alert_id": alert.id,
                "user_id": user_id,
                "ip_address": ip_address,
                "details": alert.details,
            },
        )
        return alert

    def process_alert_queue(self, db: Session) -> int:
        with self._lock:
            pending = list(self.alert_queue)
            self.alert_queue.clear()

        handled = 0
        failed: List[SecurityAlert] = []
        for alert in pending:
            try:
                self.handle_security_alert(db, alert)
                handled += 1
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to handle security alert",
                    extra={"alert_id": alert.id, "event_type": alert.event_type.value},
                )
                failed.append(alert)

        if failed:
            with self._lock:
                self.alert_queue.extend(failed)
        return handled

    def handle_security_alert(self, db: Session, alert: SecurityAlert) -> None:
        details = dict(alert.details)
        details.update(
            {
                "event_type": alert.event_type.value,
                "threat_level": alert.threat_level.value,
                "ip_address": alert.ip_address,
            }
        )
        # Stored with the alert time so the 24 hour windows line up with detection.
        audit_services.create_activity_log(
            db,
            data=ActivityLogCreate(
                entity_type=ALERT_ENTITY,
                entity_id=alert.id,
                action=ALERT_ACTION,
                user_id=alert.user_id,
                details=details,
                severity=SEVERITY_FOR_THREAT[alert.threat_level],
                ip_address=alert.ip_address,
                user_agent=alert.user_agent,
                created_at=alert.created_at,
            ),
        )

        if alert.threat_level in (ThreatLevel.HIGH, ThreatLevel.CRITICAL):
            self._send_webhook(alert)

        self._automatic_response(db, alert)

    def _send_webhook(self, alert: SecurityAlert) -> None:
        if not self.webhook_url:
            return
        payload = {
            "text": f"Security Alert: {alert.event_type.value}",
            "attachments": [
                {
                    "color": "danger" if alert.threat_level == ThreatLevel.CRITICAL else "warning",
                    "fields": [
                        {"title": "Threat Level", "value": alert.threat_level.value, "short": True},
                        {"title": "IP Address", "value": alert.ip_address or "-", "short": True},
                        {"title": "User ID", "value": alert.user_id or "-", "short": True},
                        {"title": "Time", "value": alert.created_at.isoformat(), "short": True},
                        {"title": "Details", "value": json.dumps(alert.details, ensure_ascii=False), "short": False},
                    ],
                }
            ],
        }
        try:
            _post_webhook(self.webhook_url, payload)
        except Exception:  # noqa: BLE001
            logger.warning("Security webhook delivery failed", extra={"alert_id": alert.id}, exc_info=True)

    def _automatic_response(self, db: Session, alert: SecurityAlert) -> None:
        if (
            alert.event_type == SecurityEventType.BRUTE_FORCE_ATTACK
            and alert.threat_level == ThreatLevel.CRITICAL
            and alert.ip_address
        ):
            services.block_ip(
                db,
                ip_address=alert.ip_address,
                reason=f"Brute force attack: {alert.details.get('attempts')} failed logins in 1 hour",
                blocked_by="system",
                duration=AUTO_BLOCK_DURATION,
            )
        elif alert.event_type == SecurityEventType.DATA_EXPORT_LARGE and alert.threat_level == ThreatLevel.HIGH:
            notification_services.notify_admins(
                db,
                title="대용량 데이터 내보내기 검토 필요",
                message=(
                    f"{alert.details.get('file_size_mb')}MB 규모의 데이터 내보내기가 감지되었습니다. "
                    "내보내기 내역을 검토해 주세요."
                ),
                type=NotificationType.WARNING,
            )
        elif alert.event_type == SecurityEventType.UNUSUAL_ACTIVITY and alert.threat_level == ThreatLevel.HIGH:
            notification_services.notify_admins(
                db,
                title="비정상 사용자 활동 감지",
                message=f"사용자 {alert.user_id}의 활동량이 평소보다 급증했습니다.",
                type=NotificationType.WARNING,
            )

    # ------------------------------------------------------------------
    # Reporting and manual operations
    # ------------------------------------------------------------------

    def _alert_rows(self, db: Session, since: datetime, *, severities=None) -> List[ActivityLog]:
        query = db.query(ActivityLog).filter(
            ActivityLog.entity_type == ALERT_ENTITY,
            ActivityLog.action == ALERT_ACTION,
            ActivityLog.created_at >= since,
        )
        if severities is not None:
            query = query.filter(ActivityLog.severity.in_(severities))
        return query.order_by(ActivityLog.created_at.desc()).all()

    def _resolution_rows(self, db: Session, *, since: Optional[datetime] = None) -> List[ActivityLog]:
        query = db.query(ActivityLog).filter(
            ActivityLog.entity_type == ALERT_ENTITY,
            ActivityLog.action == RESOLVED_ACTION,
        )
        if since is not None:
            query = query.filter(ActivityLog.created_at >= since)
        return query.all()

    def get_security_metrics(self, db: Session, *, now: Optional[datetime] = None) -> SecurityMetrics:
        now = now or _utcnow()
        day_ago = now - timedelta(hours=24)

        alerts = self._alert_rows(db, day_ago)
        resolutions = self._resolution_rows(db, since=day_ago)

        alert_times = {
            row.entity_id: _as_utc(row.created_at)
            for row in db.query(ActivityLog)
            .filter(
                ActivityLog.entity_type == ALERT_ENTITY,
                ActivityLog.action == ALERT_ACTION,
                ActivityLog.entity_id.in_([r.entity_id for r in resolutions]),
            )
            .all()
        } if resolutions else {}
        durations = [
            (_as_utc(row.created_at) - alert_times[row.entity_id]).total_seconds()
            for row in resolutions
            if row.entity_id in alert_times
        ]

        return SecurityMetrics(
            failed_logins_last_hour=len(self._failed_logins(db, now - timedelta(hours=1))),
            failed_logins_last_24h=len(self._failed_logins(db, day_ago)),
            suspicious_ips=sum(
                1
                for row in alerts
                if (row.details or {}).get("event_type") == SecurityEventType.SUSPICIOUS_IP.value
            ),
            active_threats=sum(1 for row in alerts if row.severity in ALERTING_SEVERITIES),
            resolved_threats_today=len(resolutions),
            avg_threat_resolution_time=round(sum(durations) / len(durations), 2) if durations else 0.0,
        )

    def resolve_alert(self, db: Session, *, alert_id: str, resolved_by: str) -> ActivityLog:
        alert_row = (
            db.query(ActivityLog)
            .filter(
                ActivityLog.entity_type == ALERT_ENTITY,
                ActivityLog.action == ALERT_ACTION,
                ActivityLog.entity_id == alert_id,
            )
            .first()
        )
        if alert_row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Security alert not found.")
        already = (
            db.query(ActivityLog)
            .filter(
                ActivityLog.entity_type == ALERT_ENTITY,
                ActivityLog.action == RESOLVED_ACTION,
                ActivityLog.entity_id == alert_id,
            )
            .first()
        )
        if already is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Security alert already resolved.")

        return audit_services.log_event(
            db,
            actor_user_id=resolved_by,
            entity_type=ALERT_ENTITY,
            entity_id=alert_id,
            action=RESOLVED_ACTION,
            details={"resolved_by": resolved_by},
            critical=True,
        )

    def get_active_alerts(self, db: Session, *, now: Optional[datetime] = None) -> List[SecurityAlert]:
        now = now or _utcnow()
        rows = self._alert_rows(db, now - timedelta(hours=24), severities=ALERTING_SEVERITIES)
        resolved_ids = {row.entity_id for row in self._resolution_rows(db)}

        alerts: List[SecurityAlert] = []
        for row in rows:
            details = dict(row.details or {})
            event_type = details.pop("event_type", SecurityEventType.UNUSUAL_ACTIVITY.value)
            threat_level = details.pop("threat_level", None)
            details.pop("ip_address", None)
            alerts.append(
                SecurityAlert(
                    id=row.entity_id,
                    event_type=SecurityEventType(event_type),
                    threat_level=ThreatLevel(threat_level) if threat_level else THREAT_FOR_SEVERITY[row.severity],
                    user_id=row.user_id,
                    ip_address=row.ip_address,
                    user_agent=row.user_agent,
                    details=details,
                    created_at=_as_utc(row.created_at),
                    resolved=row.entity_id in resolved_ids,
                )
            )
        return alerts

    def generate_daily_security_report(self, db: Session, *, now: Optional[datetime] = None) -> dict:
        now = now or _utcnow()
        metrics = self.get_security_metrics(db, now=now)
        report = {"date": now.date().isoformat()}
        report.update(vars(metrics))

        logger.info("Daily security report", extra={"report": report})

        admins = (
            db.query(account_models.User)
            .filter(
                account_models.User.is_active.is_(True),
                account_models.User.role.in_(
                    [account_models.AccountRole.ADMIN, account_models.AccountRole.SYSTEM_ADMIN]
                ),
            )
            .all()
        )
        content = "\n".join(f"{key}: {value}" for key, value in report.items())
        for admin in admins:
            notification_services.send_email(
                "security_daily_report",
                admin.email,
                f"[보안] 일일 보안 보고서 {report['date']}",
                {key: str(value) for key, value in report.items()},
                f"security-report-{report['date']}",
                content=content,
                recipient_name=admin.full_name,
                db=db,
            )
        return report


_monitor: Optional[SecurityMonitor] = None
_monitor_lock = threading.Lock()


def get_security_monitor() -> SecurityMonitor:
    global _monitor
    with _monitor_lock:
        if _monitor is None:
            _monitor = SecurityMonitor(webhook_url=os.getenv("SECURITY_WEBHOOK_URL") or None)
        return _monitor
