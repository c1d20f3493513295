from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from sitedb.apps.accounts import models, schemas, services
from sitedb.apps.audit.models import ActivityLog
from sitedb.apps.security import services as security_services
from sitedb.security import get_password_hash


PASSWORD = "siteP4ssword"


@pytest.fixture()
def worker(db_session):
    user = models.User(
        email="worker@example.com",
        full_name="김철수",
        role=models.AccountRole.WORKER,
        hashed_password=get_password_hash(PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


def _login(db_session, password, *, email="worker@example.com", ip="10.0.0.5"):
    return services.authenticate_user(
        db_session,
        login_req=schemas.LoginRequest(email=email, password=password),
        ip=ip,
        user_agent="pytest",
    )


def test_successful_login_records_attempt_and_resets_counters(db_session, worker):
    worker.login_attempts = 2
    db_session.commit()

    user = _login(db_session, PASSWORD, email="WORKER@example.com ")

    assert user.id == worker.id
    assert user.login_attempts == 0
    assert user.last_login_ip == "10.0.0.5"
    row = db_session.query(ActivityLog).filter(ActivityLog.action == "LOGIN").one()
    assert row.details["success"] is True
    assert row.user_email == "worker@example.com"
    assert row.ip_address == "10.0.0.5"


def test_third_failure_locks_account_with_escalating_schedule(db_session, worker):
    for _ in range(services.MAX_LOGIN_ATTEMPTS):
        with pytest.raises(services.AuthenticationError):
            _login(db_session, "wrong-password1")

    db_session.refresh(worker)
    assert worker.lockout_count == 1
    assert worker.locked_until is not None

    with pytest.raises(services.AuthenticationError) as exc:
        _login(db_session, PASSWORD)
    assert exc.value.retry_after_seconds is not None
    assert exc.value.retry_after_seconds <= services.LOCKOUT_SCHEDULE_SECONDS[0]

    # Second lockout uses the next step of the schedule.
    worker.locked_until = None
    db_session.commit()
    for _ in range(services.MAX_LOGIN_ATTEMPTS):
        with pytest.raises(services.AuthenticationError):
            _login(db_session, "wrong-password1")
    db_session.refresh(worker)
    locked_until = worker.locked_until
    if locked_until.tzinfo is None:
        locked_until = locked_until.replace(tzinfo=timezone.utc)
    remaining = locked_until - datetime.now(timezone.utc)
    assert timedelta(seconds=60) < remaining <= timedelta(seconds=services.LOCKOUT_SCHEDULE_SECONDS[1])

    failures = [
        row
        for row in db_session.query(ActivityLog).filter(ActivityLog.action == "LOGIN").all()
        if row.details["success"] is False
    ]
    assert len(failures) == 7


def test_unknown_and_inactive_users_are_rejected(db_session, worker):
    with pytest.raises(services.AuthenticationError):
        _login(db_session, PASSWORD, email="nobody@example.com")

    worker.is_active = False
    db_session.commit()
    with pytest.raises(services.AuthenticationError):
        _login(db_session, PASSWORD)


def test_blocked_ip_is_refused_before_password_check(db_session, worker):
    security_services.block_ip(db_session, ip_address="10.0.0.66", reason="brute force")
    db_session.commit()

    with pytest.raises(services.AuthenticationError) as exc:
        _login(db_session, PASSWORD, ip="10.0.0.66")
    assert exc.value.status_code == 403

    assert _login(db_session, PASSWORD, ip="10.0.0.67").id == worker.id


def test_access_token_carries_role_and_organization(worker):
    token, expires_in = services.issue_access_token_for_user(worker)
    from jose import jwt
    from sitedb.security import JWT_ALGORITHM, SECRET_KEY

    claims = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    assert claims["sub"] == worker.id
    assert claims["role"] == "worker"
    assert expires_in > 0


def test_first_admin_only_once(db_session):
    admin = services.create_first_admin(
        db_session,
        schemas.FirstAdminCreate(email="root@example.com", full_name="관리자", password="Admin12345"),
    )
    db_session.commit()
    assert admin.role == models.AccountRole.SYSTEM_ADMIN

    with pytest.raises(HTTPException) as exc:
        services.create_first_admin(
            db_session,
            schemas.FirstAdminCreate(email="other@example.com", full_name="관리자2", password="Admin12345"),
        )
    assert exc.value.status_code == 409
