from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivityLog, ActivitySeverity
from sitedb.apps.audit.schemas import ActivityLogCreate
from sitedb.apps.notifications import models as notification_models
from sitedb.apps.security import models, monitor, services, tracker
from sitedb.apps.security.monitor import SecurityEventType, SecurityMonitor, ThreatLevel


class RecordingTracker(tracker.ErrorTracker):
    def __init__(self):
        self.messages = []
        self.exceptions = []

    def capture_message(self, message, *, level="info", tags=None, extra=None):
        self.messages.append((message, level, tags))

    def capture_exception(self, exc, *, tags=None, extra=None):
        self.exceptions.append((exc, tags))


@pytest.fixture()
def recorder():
    return RecordingTracker()


@pytest.fixture()
def sec_monitor(recorder):
    return SecurityMonitor(tracker=recorder)


def _now():
    return datetime.now(timezone.utc)


def _failed_logins(db_session, count, *, ip="203.0.113.7", email="victim@example.com"):
    for _ in range(count):
        audit_services.record_login_attempt(
            db_session,
            email=email,
            user_id=None,
            success=False,
            ip_address=ip,
            user_agent="curl/8",
            reason="bad_password",
        )
    db_session.commit()


def _activity(db_session, *, user_id=None, ip="198.51.100.1", action="UPDATE", when=None, count=1):
    for _ in range(count):
        audit_services.create_activity_log(
            db_session,
            data=ActivityLogCreate(
                entity_type="site",
                action=action,
                user_id=user_id,
                ip_address=ip,
                created_at=when,
            ),
        )
    db_session.commit()


def _kinds(alerts):
    return sorted((a.event_type, a.threat_level) for a in alerts)


def test_brute_force_is_critical_and_blocks_ip(db_session, sec_monitor, recorder):
    _failed_logins(db_session, 10)

    alerts = sec_monitor.check_failed_logins(db_session, _now())

    assert _kinds(alerts) == sorted(
        [
            (SecurityEventType.BRUTE_FORCE_ATTACK, ThreatLevel.CRITICAL),
            (SecurityEventType.FAILED_LOGIN, ThreatLevel.HIGH),
        ]
    )
    brute = next(a for a in alerts if a.event_type == SecurityEventType.BRUTE_FORCE_ATTACK)
    assert brute.details == {"attempts": 10, "timeframe": "1_hour", "action_required": "IP_BLOCK"}
    assert ("Security Alert: BRUTE_FORCE_ATTACK", "fatal", {"security_event": "BRUTE_FORCE_ATTACK", "threat_level": "CRITICAL"}) in recorder.messages

    assert sec_monitor.process_alert_queue(db_session) == 2
    db_session.commit()

    assert sec_monitor.alert_queue == []
    assert services.is_ip_blocked(db_session, "203.0.113.7")
    stored = db_session.query(ActivityLog).filter(ActivityLog.action == "SECURITY_ALERT").all()
    assert sorted(row.severity for row in stored) == sorted([ActivitySeverity.CRITICAL, ActivitySeverity.ERROR])
    assert db_session.query(ActivityLog).filter(ActivityLog.action == "IP_BLOCKED").count() == 1


def test_five_failures_raise_lower_levels(db_session, sec_monitor):
    _failed_logins(db_session, 5)
    _failed_logins(db_session, 4, ip="192.0.2.9", email="other@example.com")

    alerts = sec_monitor.check_failed_logins(db_session, _now())

    assert _kinds(alerts) == sorted(
        [
            (SecurityEventType.BRUTE_FORCE_ATTACK, ThreatLevel.HIGH),
            (SecurityEventType.FAILED_LOGIN, ThreatLevel.MEDIUM),
        ]
    )
    email_alert = next(a for a in alerts if a.event_type == SecurityEventType.FAILED_LOGIN)
    assert email_alert.details["action_required"] == "ACCOUNT_LOCK"


def test_daily_failed_login_threshold(db_session, sec_monitor):
    old = _now() - timedelta(hours=5)
    for _ in range(20):
        audit_services.create_activity_log(
            db_session,
            data=ActivityLogCreate(
                entity_type="auth",
                action="LOGIN",
                user_email="slow@example.com",
                details={"success": False},
                ip_address="192.0.2.50",
                created_at=old,
            ),
        )
    db_session.commit()

    assert sec_monitor.check_failed_logins(db_session, _now()) == []
    alerts = sec_monitor.check_failed_logins_daily(db_session, _now())
    assert _kinds(alerts) == [(SecurityEventType.FAILED_LOGIN, ThreatLevel.HIGH)]
    assert alerts[0].details["timeframe"] == "24_hours"


def test_suspicious_ip_patterns(db_session, sec_monitor, make_user):
    users = [make_user(AccountRole.WORKER) for _ in range(6)]
    for user in users:
        _activity(db_session, user_id=user.id, ip="198.51.100.20", action="DELETE")
    _activity(db_session, user_id=users[0].id, ip="127.0.0.1", count=120)

    alerts = sec_monitor.check_suspicious_ips(db_session, _now())

    patterns = sorted(a.details["pattern"] for a in alerts)
    assert patterns == ["HIGH_RISK_ACTIONS", "MULTIPLE_USERS_SAME_IP"]
    assert all(a.ip_address == "198.51.100.20" for a in alerts)


def test_high_request_volume(db_session, sec_monitor):
    _activity(db_session, ip="198.51.100.30", count=101, when=_now() - timedelta(hours=2))
    alerts = sec_monitor.check_suspicious_ips(db_session, _now())
    assert _kinds(alerts) == [(SecurityEventType.RATE_LIMIT_EXCEEDED, ThreatLevel.HIGH)]


def test_unusual_activity_compares_against_baseline(db_session, sec_monitor, make_user):
    spiking = make_user(AccountRole.WORKER)
    steady = make_user(AccountRole.WORKER)
    three_days_ago = _now() - timedelta(days=3)
    _activity(db_session, user_id=steady.id, when=three_days_ago, count=72)
    _activity(db_session, user_id=steady.id, count=51)
    _activity(db_session, user_id=spiking.id, count=51)

    alerts = sec_monitor.check_unusual_activity(db_session, _now())

    assert [a.user_id for a in alerts] == [spiking.id]
    assert alerts[0].threat_level == ThreatLevel.MEDIUM


def test_concurrent_sessions_and_rate_limits(db_session, sec_monitor, make_user):
    user = make_user(AccountRole.WORKER)
    for n in range(4):
        audit_services.record_login_attempt(
            db_session,
            email=user.email,
            user_id=user.id,
            success=True,
            ip_address=f"198.51.100.{n}",
            user_agent="Mozilla/5.0",
        )
    _activity(db_session, user_id=None, ip="192.0.2.77", count=61)

    sessions = sec_monitor.check_concurrent_sessions(db_session, _now())
    assert [a.details["pattern"] for a in sessions] == ["MULTIPLE_CONCURRENT_SESSIONS"]

    limited = sec_monitor.check_rate_limits(db_session, _now())
    assert [(a.ip_address, a.threat_level) for a in limited] == [("192.0.2.77", ThreatLevel.MEDIUM)]


def test_concurrent_sessions_count_failed_logins_for_known_user(db_session, sec_monitor, make_user):
    user = make_user(AccountRole.WORKER)
    for n in range(4):
        audit_services.record_login_attempt(
            db_session,
            email=user.email,
            user_id=user.id,
            success=n == 0,
            ip_address=f"198.51.100.{n}",
            user_agent="Mozilla/5.0",
            reason=None if n == 0 else "bad_password",
        )
    _failed_logins(db_session, 5)
    db_session.commit()

    sessions = sec_monitor.check_concurrent_sessions(db_session, _now())
    assert [(a.user_id, a.details["sessions"]) for a in sessions] == [(user.id, 4)]


def test_large_export_notifies_admins_and_posts_webhook(db_session, recorder, make_user, monkeypatch):
    admin = make_user(AccountRole.ADMIN)
    exporter = make_user(AccountRole.SITE_MANAGER)
    db_session.add(models.DataExport(user_id=exporter.id, export_type="inventory", file_size_bytes=600 * 1024 * 1024))
    db_session.add(models.DataExport(user_id=exporter.id, export_type="inventory", file_size_bytes=150 * 1024 * 1024))
    db_session.commit()

    posted = []
    monkeypatch.setattr(monitor, "_post_webhook", lambda url, payload: posted.append((url, payload)) or 200)
    sec = SecurityMonitor(tracker=recorder, webhook_url="https://hooks.example.com/security")

    alerts = sec.check_large_data_exports(db_session, _now())
    assert _kinds(alerts) == sorted(
        [
            (SecurityEventType.DATA_EXPORT_LARGE, ThreatLevel.HIGH),
            (SecurityEventType.DATA_EXPORT_LARGE, ThreatLevel.MEDIUM),
        ]
    )
    assert all(a.details["requires_review"] for a in alerts)

    sec.process_alert_queue(db_session)
    db_session.commit()

    assert len(posted) == 1
    url, payload = posted[0]
    assert url == "https://hooks.example.com/security"
    assert payload["attachments"][0]["color"] == "warning"
    notes = db_session.query(notification_models.Notification).all()
    assert [n.user_id for n in notes] == [admin.id]


def test_webhook_failure_is_swallowed(db_session, recorder, monkeypatch):
    def _boom(url, payload):
        raise OSError("connection refused")

    monkeypatch.setattr(monitor, "_post_webhook", _boom)
    sec = SecurityMonitor(tracker=recorder, webhook_url="https://hooks.example.com/security")
    sec.create_security_alert(SecurityEventType.SQL_INJECTION_ATTEMPT, ThreatLevel.CRITICAL, ip_address="192.0.2.1")

    assert sec.process_alert_queue(db_session) == 1
    assert sec.alert_queue == []


def test_failed_handling_requeues_alert(db_session, sec_monitor, monkeypatch):
    sec_monitor.create_security_alert(SecurityEventType.XSS_ATTEMPT, ThreatLevel.LOW)
    sec_monitor.create_security_alert(SecurityEventType.PRIVILEGE_ESCALATION, ThreatLevel.HIGH)
    original = sec_monitor.handle_security_alert

    def _flaky(db, alert):
        if alert.event_type == SecurityEventType.XSS_ATTEMPT:
            raise RuntimeError("database unavailable")
        return original(db, alert)

    monkeypatch.setattr(sec_monitor, "handle_security_alert", _flaky)

    assert sec_monitor.process_alert_queue(db_session) == 1
    assert [a.event_type for a in sec_monitor.alert_queue] == [SecurityEventType.XSS_ATTEMPT]


def test_failing_check_does_not_stop_the_rest(db_session, sec_monitor, recorder, monkeypatch):
    db_session.add(models.DataExport(export_type="salary", file_size_bytes=200 * 1024 * 1024))
    db_session.commit()

    def _broken(db, now):
        raise RuntimeError("query failed")

    monkeypatch.setattr(sec_monitor, "check_failed_logins", _broken)

    raised = sec_monitor.perform_security_checks(db_session)

    assert raised == 1
    assert [tags for _, tags in recorder.exceptions] == [{"security_check": "failed_logins"}]


def test_metrics_resolution_and_active_alerts(db_session, sec_monitor, make_user):
    admin = make_user(AccountRole.ADMIN)
    first = sec_monitor.create_security_alert(
        SecurityEventType.SUSPICIOUS_IP, ThreatLevel.MEDIUM, ip_address="198.51.100.5", now=_now() - timedelta(minutes=10)
    )
    second = sec_monitor.create_security_alert(SecurityEventType.UNAUTHORIZED_ACCESS, ThreatLevel.HIGH)
    sec_monitor.create_security_alert(SecurityEventType.XSS_ATTEMPT, ThreatLevel.LOW)
    sec_monitor.process_alert_queue(db_session)
    db_session.commit()

    sec_monitor.resolve_alert(db_session, alert_id=first.id, resolved_by=admin.id)
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        sec_monitor.resolve_alert(db_session, alert_id=first.id, resolved_by=admin.id)
    assert exc.value.status_code == 409
    with pytest.raises(HTTPException) as exc:
        sec_monitor.resolve_alert(db_session, alert_id="missing", resolved_by=admin.id)
    assert exc.value.status_code == 404

    active = sec_monitor.get_active_alerts(db_session)
    assert [a.id for a in active] == [second.id, first.id]
    assert [a.resolved for a in active] == [False, True]
    assert active[1].event_type == SecurityEventType.SUSPICIOUS_IP
    assert active[1].threat_level == ThreatLevel.MEDIUM

    metrics = sec_monitor.get_security_metrics(db_session)
    assert metrics.suspicious_ips == 1
    assert metrics.active_threats == 2
    assert metrics.resolved_threats_today == 1
    assert metrics.avg_threat_resolution_time >= 600


def test_daily_report_emails_admins(db_session, sec_monitor, make_user):
    admin = make_user(AccountRole.ADMIN, email="ops@example.com")
    make_user(AccountRole.WORKER)
    _failed_logins(db_session, 2)

    report = sec_monitor.generate_daily_security_report(db_session)
    db_session.commit()

    assert report["failed_logins_last_24h"] == 2
    assert report["date"] == _now().date().isoformat()
    logs = db_session.query(notification_models.EmailLog).all()
    assert [log.recipient for log in logs] == [admin.email]
    assert logs[0].status == notification_models.EmailStatus.SKIPPED_NO_PROVIDER


def test_error_tracker_selection(monkeypatch):
    monkeypatch.setenv("ERROR_TRACKER", "log")
    chosen, configured = tracker.get_error_tracker()
    assert isinstance(chosen, tracker.LoggingTracker) and configured

    monkeypatch.setenv("ERROR_TRACKER", "none")
    chosen, configured = tracker.get_error_tracker()
    assert isinstance(chosen, tracker.NoopTracker) and not configured

    monkeypatch.setenv("ERROR_TRACKER", "carrier-pigeon")
    with pytest.raises(ValueError):
        tracker.get_error_tracker()


def test_sentry_tracker_selected_from_env(monkeypatch):
    inits, messages = [], []
    monkeypatch.setattr(tracker.sentry_sdk, "init", lambda **kwargs: inits.append(kwargs))
    monkeypatch.setattr(
        tracker.sentry_sdk,
        "capture_message",
        lambda message, level=None: messages.append((message, level)),
    )

    monkeypatch.setenv("ERROR_TRACKER", "sentry")
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    with pytest.raises(ValueError):
        tracker.get_error_tracker()

    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.com/1")
    chosen, configured = tracker.get_error_tracker()
    assert isinstance(chosen, tracker.SentryTracker) and configured
    assert inits == [{"dsn": "https://key@sentry.example.com/1", "environment": None}]

    chosen.capture_message("Brute force suspected", level="warning", tags={"ip": "10.0.0.1"}, extra={"count": 5})
    assert messages == [("Brute force suspected", "warning")]
