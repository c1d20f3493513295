from __future__ import annotations

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from sitedb.apps.accounts import router_public


def _make_request(client_host: str = "127.0.0.1") -> Request:
    return Request(
        {
            "type": "http",
            "headers": [(b"user-agent", b"site-tablet/2.1")],
            "client": (client_host, 12345),
            "method": "POST",
            "path": "/auth/login",
        }
    )


@pytest.fixture(autouse=True)
def clear_state():
    router_public._RATE_LIMIT_STATE.clear()
    yield
    router_public._RATE_LIMIT_STATE.clear()


def test_client_ip_and_user_agent_come_from_request():
    request = _make_request("10.10.10.10")
    assert router_public._client_ip(request) == "10.10.10.10"
    assert router_public._user_agent(request) == "site-tablet/2.1"


def test_login_limit_is_tracked_per_ip_and_endpoint():
    request = _make_request("10.0.0.1")

    for _ in range(router_public._AUTH_RATE_LIMIT_MAX_ATTEMPTS):
        router_public._enforce_auth_rate_limit(request, "login")

    with pytest.raises(HTTPException) as exc:
        router_public._enforce_auth_rate_limit(request, "login")
    assert exc.value.status_code == 429
    assert "Retry-After" in exc.value.headers

    # Other endpoints and other addresses keep their own windows.
    router_public._enforce_auth_rate_limit(request, "token")
    router_public._enforce_auth_rate_limit(_make_request("10.0.0.2"), "login")


def test_auth_routes_are_registered():
    paths = {route.path for route in router_public.router.routes}
    assert {"/auth/login", "/auth/token", "/auth/me", "/auth/first-admin"} <= paths
