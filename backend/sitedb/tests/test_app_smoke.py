from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sitedb.apps.accounts import router_public
from sitedb.apps.accounts.models import Organization
from sitedb.database import get_read_db, get_write_db
from sitedb.main import app


@pytest.fixture()
def client(db_session):
    def _override():
        yield db_session

    app.dependency_overrides[get_write_db] = _override
    app.dependency_overrides[get_read_db] = _override
    router_public._RATE_LIMIT_STATE.clear()
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        router_public._RATE_LIMIT_STATE.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_bootstrap_login_and_me(client):
    created = client.post(
        "/auth/first-admin",
        json={"email": "root@example.com", "full_name": "관리자", "password": "Admin12345"},
    )
    assert created.status_code == 201
    assert created.json()["role"] == "system_admin"

    again = client.post(
        "/auth/first-admin",
        json={"email": "second@example.com", "full_name": "관리자", "password": "Admin12345"},
    )
    assert again.status_code == 409

    bad = client.post("/auth/login", json={"email": "root@example.com", "password": "wrong-pass1"})
    assert bad.status_code == 401

    login = client.post("/auth/login", json={"email": "root@example.com", "password": "Admin12345"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "root@example.com"


def test_protected_routes_require_a_token(client):
    assert client.get("/auth/me").status_code == 401


def _bearer(client, email, password):
    login = client.post("/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


def test_signup_approval_then_first_check_in(client, db_session, make_site):
    client.post(
        "/auth/first-admin",
        json={"email": "root@example.com", "full_name": "관리자", "password": "Admin12345"},
    )
    admin = _bearer(client, "root@example.com", "Admin12345")
    org = Organization(name="대한건설")
    db_session.add(org)
    db_session.commit()
    site = make_site()

    requested = client.post(
        "/auth/signup-requests",
        json={"full_name": "최민수", "company": "대한건설", "email": "crew@example.com"},
    )
    assert requested.status_code == 201
    assert requested.json()["status"] == "pending"

    approved = client.post(
        f"/accounts/admin/signup-requests/{requested.json()['id']}/approve",
        json={"organization_id": org.id, "site_ids": [site.id]},
        headers=admin,
    )
    assert approved.status_code == 200
    crew = _bearer(client, "crew@example.com", approved.json()["temporary_password"])

    checked_in = client.post("/attendance/check-in", json={"site_id": site.id}, headers=crew)
    assert checked_in.status_code == 201
    assert client.post("/attendance/check-in", json={"site_id": site.id}, headers=crew).status_code == 409

    checked_out = client.post(f"/attendance/{checked_in.json()['id']}/check-out", headers=crew)
    assert checked_out.status_code == 200
    assert checked_out.json()["check_out_time"] is not None

    mine = client.get("/attendance/me", headers=crew)
    assert mine.json()["summary"]["days_present"] == 1
