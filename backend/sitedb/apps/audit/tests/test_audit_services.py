from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sitedb.apps.audit import models, router, services
from sitedb.apps.audit.schemas import ActivityLogCreate


def test_log_event_writes_record(db_session):
    event = services.log_event(
        db_session,
        actor_user_id="u-1",
        entity_type="material_request",
        entity_id="mr-1",
        action="APPROVE",
        details={"status": "approved"},
    )
    db_session.commit()

    assert event is not None
    assert event.entity_type == "material_request"
    assert event.severity == models.ActivitySeverity.INFO
    assert event.details == {"status": "approved"}


def test_log_event_is_best_effort_unless_critical(db_session, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(services, "create_activity_log", boom)

    assert (
        services.log_event(
            db_session,
            actor_user_id=None,
            entity_type="site",
            entity_id=None,
            action="UPDATE",
        )
        is None
    )
    with pytest.raises(RuntimeError):
        services.log_event(
            db_session,
            actor_user_id=None,
            entity_type="salary_record",
            entity_id=None,
            action="APPROVE",
            critical=True,
        )


def test_login_attempt_severity_follows_outcome(db_session):
    ok = services.record_login_attempt(
        db_session, email="a@example.com", user_id="u-1", success=True, ip_address="10.0.0.1", user_agent="ua"
    )
    bad = services.record_login_attempt(
        db_session,
        email="a@example.com",
        user_id="u-1",
        success=False,
        ip_address="10.0.0.1",
        user_agent="ua",
        reason="invalid_password",
    )
    assert ok.severity == models.ActivitySeverity.INFO
    assert bad.severity == models.ActivitySeverity.WARN
    assert bad.details == {"success": False, "reason": "invalid_password"}
    assert ok.action == bad.action == "LOGIN"


def test_list_activity_logs_filters_by_time_and_action(db_session):
    now = datetime.now(timezone.utc)
    for offset, action in ((3, "CREATE"), (2, "UPDATE"), (1, "UPDATE")):
        services.create_activity_log(
            db_session,
            data=ActivityLogCreate(
                entity_type="site",
                entity_id="s-1",
                action=action,
                created_at=now - timedelta(hours=offset),
            ),
        )
    db_session.commit()

    updates = services.list_activity_logs(db_session, action="UPDATE")
    assert len(updates) == 2
    assert updates[0].created_at >= updates[1].created_at

    recent = services.list_activity_logs(db_session, start=now - timedelta(hours=2, minutes=30))
    assert {row.action for row in recent} == {"UPDATE"}


def test_activity_route_is_registered():
    assert "/audit/activity-logs" in {route.path for route in router.router.routes}
