# backend/sitedb/apps/accounts/router_public.py

from __future__ import annotations

import os
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from sitedb.database import get_db
from sitedb.security import get_current_active_user
from . import models, schemas, services

router = APIRouter(prefix="/auth", tags=["auth"])

_AUTH_RATE_LIMIT_MAX_ATTEMPTS = int(os.getenv("AUTH_RATE_LIMIT_MAX_ATTEMPTS", "10"))
_AUTH_RATE_LIMIT_WINDOW_SEC = int(os.getenv("AUTH_RATE_LIMIT_WINDOW_SEC", "60"))

# (ip, endpoint) -> timestamps of recent calls, per process.
_RATE_LIMIT_STATE: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)
_RATE_LIMIT_LOCK = threading.Lock()


def _client_ip(request: Request) -> str | None:
    try:
        return request.client.host if request.client else None
    except Exception:
        return None


def _user_agent(request: Request) -> str | None:
    try:
        return request.headers.get("user-agent")
    except Exception:
        return None


def _enforce_auth_rate_limit(request: Request, endpoint_key: str) -> None:
    """
    Sliding-window limit per client IP and endpoint. Raises 429 once the
    window already holds the maximum number of attempts.
    """
    ip = _client_ip(request) or "unknown"
    now = time.monotonic()
    window_start = now - _AUTH_RATE_LIMIT_WINDOW_SEC

    with _RATE_LIMIT_LOCK:
        hits = _RATE_LIMIT_STATE[(ip, endpoint_key)]
        while hits and hits[0] <= window_start:
            hits.popleft()
        if len(hits) >= _AUTH_RATE_LIMIT_MAX_ATTEMPTS:
            retry_after = max(1, int(hits[0] - window_start))
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Please try again later.",
                headers={"Retry-After": str(retry_after)},
            )
        hits.append(now)


def _login(db: Session, request: Request, login_req: schemas.LoginRequest) -> schemas.Token:
    try:
        user = services.authenticate_user(
            db=db,
            login_req=login_req,
            ip=_client_ip(request),
            user_agent=_user_agent(request),
        )
    except services.AuthenticationError as exc:
        headers = None
        if exc.retry_after_seconds is not None:
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        raise HTTPException(
            status_code=exc.status_code,
            detail=str(exc) or "Incorrect email or password.",
            headers=headers,
        )

    token, expires_in = services.issue_access_token_for_user(user)
    return schemas.Token(access_token=token, expires_in=expires_in, user=user)


@router.post(
    "/login",
    response_model=schemas.Token,
    summary="Login with email and password",
)
def login(
    payload: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    _enforce_auth_rate_limit(request, "login")
    return _login(db, request, payload)


@router.post(
    "/token",
    response_model=schemas.Token,
    summary="OAuth2 password flow (form body)",
)
def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    _enforce_auth_rate_limit(request, "token")
    return _login(
        db,
        request,
        schemas.LoginRequest(email=form_data.username, password=form_data.password),
    )


@router.get(
    "/me",
    response_model=schemas.UserRead,
    summary="Get current logged-in user",
)
def read_current_user(
    current_user: models.User = Depends(get_current_active_user),
):
    return current_user


@router.post(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change own password",
)
def change_password(
    payload: schemas.PasswordChange,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    _enforce_auth_rate_limit(request, "change-password")
    services.change_password(
        db,
        current_user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    db.commit()
    return None


# ---------------------------------------------------------------------------
# BOOTSTRAP: FIRST ADMIN
# ---------------------------------------------------------------------------


@router.post(
    "/first-admin",
    response_model=schemas.UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Bootstrap the first system administrator",
    description=(
        "Used once when the database is empty. Returns **409** as soon as any "
        "user exists."
    ),
)
def create_first_admin(
    payload: schemas.FirstAdminCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    _enforce_auth_rate_limit(request, "first-admin")
    user = services.create_first_admin(db, payload)
    db.commit()
    db.refresh(user)
    return user


@router.post(
    "/signup-requests",
    response_model=schemas.SignupRequestRead,
    status_code=status.HTTP_201_CREATED,
    summary="Ask an administrator for an account",
)
def request_signup_approval(
    payload: schemas.SignupRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    _enforce_auth_rate_limit(request, "signup-request")
    signup = services.request_signup_approval(db, payload)
    db.commit()
    db.refresh(signup)
    return signup
