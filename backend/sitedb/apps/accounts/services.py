from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
import hashlib
import json
import logging
import math

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitedb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_password_hash,
    verify_password,
)
from sitedb.apps.audit import services as audit_services
from sitedb.apps.audit.models import ActivitySeverity
from sitedb.apps.security.services import is_ip_blocked
from sitedb.apps.sites import services as site_services
from sitedb.apps.validation.rules import (
    validate_business_registration_number,
    validate_korean_phone_number,
)
from sitedb.utils.numbering import generate_temporary_password

from . import models, schemas

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_LOGIN_ATTEMPTS = 3
LOCKOUT_SCHEDULE_SECONDS = (30, 90, 900)
MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthenticationError(Exception):
    """Raised when login credentials are invalid or account is locked."""

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: Optional[int] = None,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
    ) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
        self.status_code = status_code


class IdempotencyError(Exception):
    """Raised when an idempotency key is reused with conflicting payload."""


# ---------------------------------------------------------------------------
# Normalisation / validation helpers
# ---------------------------------------------------------------------------


def _normalise_email(value: str) -> str:
    return value.strip().lower()


def _validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
        )

    has_letter = any(ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not (has_letter and has_digit):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must include both letters and numbers.",
        )


def _normalise_phone(phone: Optional[str]) -> Optional[str]:
    if phone is None or not phone.strip():
        return None
    result = validate_korean_phone_number(phone)
    if not result["is_valid"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])
    return result["formatted"]


def _normalise_brn(number: Optional[str]) -> Optional[str]:
    if number is None or not number.strip():
        return None
    result = validate_business_registration_number(number, check_checksum=True)
    if not result["is_valid"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])
    return result["formatted"]


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def get_user_by_id(db: Session, user_id: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.email == _normalise_email(email))
        .first()
    )


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    user = get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return user


def list_admin_users(db: Session) -> List[models.User]:
    return (
        db.query(models.User)
        .filter(
            models.User.is_active.is_(True),
            models.User.role.in_([models.AccountRole.ADMIN, models.AccountRole.SYSTEM_ADMIN]),
        )
        .all()
    )


# ---------------------------------------------------------------------------
# User lifecycle
# ---------------------------------------------------------------------------


def create_user(
    db: Session,
    data: schemas.UserCreate,
    *,
    actor_user_id: Optional[str] = None,
    must_change_password: bool = False,
) -> models.User:
    email = _normalise_email(data.email)
    if get_user_by_email(db, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists.",
        )

    if data.organization_id and not db.query(models.Organization).filter(
        models.Organization.id == data.organization_id
    ).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid organization id.")

    _validate_password_strength(data.password)

    user = models.User(
        email=email,
        full_name=data.full_name.strip(),
        phone=_normalise_phone(data.phone),
        role=data.role,
        organization_id=data.organization_id,
        hashed_password=get_password_hash(data.password),
        is_active=True,
        must_change_password=must_change_password,
    )
    db.add(user)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=user.id,
        action="CREATE",
        details={"email": email, "role": user.role.value},
    )
    return user


def create_first_admin(db: Session, data: schemas.FirstAdminCreate) -> models.User:
    if db.query(models.User.id).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An administrator already exists.",
        )
    return create_user(
        db,
        schemas.UserCreate(
            email=data.email,
            full_name=data.full_name,
            password=data.password,
            phone=data.phone,
            role=models.AccountRole.SYSTEM_ADMIN,
        ),
    )


def update_user(
    db: Session,
    user: models.User,
    data: schemas.UserUpdate,
    *,
    actor_user_id: Optional[str] = None,
) -> models.User:
    changes = data.model_dump(exclude_unset=True)

    if "full_name" in changes and changes["full_name"] is not None:
        user.full_name = changes["full_name"].strip()
    if "phone" in changes:
        user.phone = _normalise_phone(changes["phone"])
    if changes.get("role") is not None:
        user.role = changes["role"]
    if "organization_id" in changes:
        user.organization_id = changes["organization_id"]
    if changes.get("is_active") is not None:
        user.is_active = changes["is_active"]

    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=user.id,
        action="UPDATE",
        details={key: str(value) for key, value in changes.items()},
    )
    return user


def update_user_role(
    db: Session,
    *,
    user_id: str,
    role: models.AccountRole,
    actor_user_id: Optional[str] = None,
) -> models.User:
    user = _get_user_or_404(db, user_id)
    previous = user.role
    user.role = role
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=user.id,
        action="ROLE_CHANGE",
        details={"from": previous.value if previous else None, "to": role.value},
        severity=ActivitySeverity.WARN,
    )
    return user


def update_user_status(
    db: Session,
    *,
    user_ids: Iterable[str],
    is_active: bool,
    actor_user_id: Optional[str] = None,
) -> int:
    ids = list(user_ids)
    users = db.query(models.User).filter(models.User.id.in_(ids)).all()
    for user in users:
        user.is_active = is_active
        db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=None,
        action="ACTIVATE" if is_active else "DEACTIVATE",
        details={"user_ids": [u.id for u in users]},
    )
    return len(users)


def delete_users(
    db: Session,
    *,
    user_ids: Iterable[str],
    actor_user_id: Optional[str] = None,
) -> int:
    ids = [uid for uid in user_ids if uid != actor_user_id]
    users = db.query(models.User).filter(models.User.id.in_(ids)).all()
    for user in users:
        db.delete(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=None,
        action="DELETE",
        details={"user_ids": [u.id for u in users]},
        severity=ActivitySeverity.WARN,
    )
    return len(users)


def reset_user_password(
    db: Session,
    *,
    user_id: str,
    actor_user_id: Optional[str] = None,
) -> Tuple[models.User, str]:
    """
    Replace the user's password with a random temporary one.

    The caller is responsible for delivering the temporary password; the
    account is flagged so the user must change it on next login.
    """
    user = _get_user_or_404(db, user_id)
    temporary = generate_temporary_password()
    user.hashed_password = get_password_hash(temporary)
    user.must_change_password = True
    user.login_attempts = 0
    user.locked_until = None
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="user",
        entity_id=user.id,
        action="PASSWORD_RESET",
        severity=ActivitySeverity.WARN,
    )
    return user, temporary


def change_password(
    db: Session,
    user: models.User,
    *,
    current_password: str,
    new_password: str,
) -> models.User:
    if not verify_password(current_password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect.",
        )
    _validate_password_strength(new_password)
    user.hashed_password = get_password_hash(new_password)
    user.must_change_password = False
    db.add(user)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        action="PASSWORD_CHANGE",
    )
    return user


def list_users(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    role: Optional[models.AccountRole] = None,
    is_active: Optional[bool] = None,
    organization_id: Optional[str] = None,
) -> dict:
    query = db.query(models.User)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.User.email).like(pattern),
                func.lower(models.User.full_name).like(pattern),
                models.User.phone.like(pattern),
            )
        )
    if role is not None:
        query = query.filter(models.User.role == role)
    if is_active is not None:
        query = query.filter(models.User.is_active.is_(is_active))
    if organization_id:
        query = query.filter(models.User.organization_id == organization_id)

    total = query.count()
    items = (
        query.order_by(models.User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"items": items, "total": total, "pages": _pages(total, limit)}


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


def create_organization(
    db: Session,
    data: schemas.OrganizationCreate,
    *,
    actor_user_id: Optional[str] = None,
) -> models.Organization:
    brn = _normalise_brn(data.business_registration_number)
    if brn and db.query(models.Organization).filter(
        models.Organization.business_registration_number == brn
    ).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An organization with this business registration number already exists.",
        )

    org = models.Organization(
        name=data.name.strip(),
        organization_type=data.organization_type,
        business_registration_number=brn,
        phone=data.phone,
        address=data.address,
    )
    db.add(org)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="organization",
        entity_id=org.id,
        action="CREATE",
        details={"name": org.name},
    )
    return org


def list_organizations(
    db: Session,
    *,
    search: Optional[str] = None,
    organization_type: Optional[models.OrganizationType] = None,
    include_inactive: bool = False,
) -> List[models.Organization]:
    query = db.query(models.Organization)
    if search:
        query = query.filter(func.lower(models.Organization.name).like(f"%{search.strip().lower()}%"))
    if organization_type is not None:
        query = query.filter(models.Organization.organization_type == organization_type)
    if not include_inactive:
        query = query.filter(models.Organization.is_active.is_(True))
    return query.order_by(models.Organization.name.asc()).all()


def update_organization(
    db: Session,
    *,
    organization_id: str,
    data: schemas.OrganizationUpdate,
    actor_user_id: Optional[str] = None,
) -> models.Organization:
    org = db.query(models.Organization).filter(models.Organization.id == organization_id).first()
    if not org:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")

    changes = data.model_dump(exclude_unset=True)
    if "business_registration_number" in changes:
        changes["business_registration_number"] = _normalise_brn(changes["business_registration_number"])
    for field, value in changes.items():
        setattr(org, field, value)

    db.add(org)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="organization",
        entity_id=org.id,
        action="UPDATE",
        details={key: str(value) for key, value in changes.items()},
    )
    return org


# ---------------------------------------------------------------------------
# Authentication and access tokens
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_account_locked(user: models.User) -> bool:
    if not user.locked_until:
        return False
    return _as_utc(user.locked_until) > datetime.now(timezone.utc)


def _seconds_until_unlock(user: models.User) -> Optional[int]:
    if not user.locked_until:
        return None
    remaining = _as_utc(user.locked_until) - datetime.now(timezone.utc)
    return max(0, int(remaining.total_seconds()))


def _register_failed_login(
    db: Session,
    user: models.User,
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    user.login_attempts = (user.login_attempts or 0) + 1
    audit_services.record_login_attempt(
        db,
        email=user.email,
        user_id=user.id,
        success=False,
        ip_address=ip,
        user_agent=user_agent,
        reason="invalid_password",
    )

    if user.login_attempts < MAX_LOGIN_ATTEMPTS:
        db.add(user)
        db.commit()
        return

    user.login_attempts = 0
    user.lockout_count = (user.lockout_count or 0) + 1
    lockout_index = min(user.lockout_count - 1, len(LOCKOUT_SCHEDULE_SECONDS) - 1)
    lockout_seconds = LOCKOUT_SCHEDULE_SECONDS[lockout_index]
    user.locked_until = datetime.now(timezone.utc) + timedelta(seconds=lockout_seconds)
    db.add(user)

    audit_services.log_event(
        db,
        actor_user_id=user.id,
        actor_email=user.email,
        entity_type="auth",
        entity_id=user.id,
        action="LOCKOUT",
        details={"lockout_seconds": lockout_seconds, "lockout_count": user.lockout_count},
        severity=ActivitySeverity.WARN,
        ip_address=ip,
        user_agent=user_agent,
    )
    db.commit()
    logger.warning(
        "Account locked after repeated failed logins",
        extra={"user_id": user.id, "lockout_seconds": lockout_seconds, "ip": ip},
    )


def _reset_failed_logins(
    db: Session,
    user: models.User,
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    user.login_attempts = 0
    user.locked_until = None
    user.lockout_count = 0
    user.last_login_at = datetime.now(timezone.utc)
    user.last_login_ip = ip
    user.last_login_user_agent = user_agent
    db.add(user)
    audit_services.record_login_attempt(
        db,
        email=user.email,
        user_id=user.id,
        success=True,
        ip_address=ip,
        user_agent=user_agent,
    )
    db.commit()


def authenticate_user(
    db: Session,
    *,
    login_req: schemas.LoginRequest,
    ip: Optional[str],
    user_agent: Optional[str],
) -> models.User:
    """
    Password login by email.

    Every attempt leaves a LOGIN row in the activity log; the security
    monitor counts the failed ones per IP and per email. Raises
    AuthenticationError on any failure.
    """
    email = _normalise_email(login_req.email)

    if ip and is_ip_blocked(db, ip):
        audit_services.record_login_attempt(
            db,
            email=email,
            user_id=None,
            success=False,
            ip_address=ip,
            user_agent=user_agent,
            reason="ip_blocked",
        )
        db.commit()
        raise AuthenticationError(
            "Access from this address is blocked.",
            status_code=status.HTTP_403_FORBIDDEN,
        )

    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        audit_services.record_login_attempt(
            db,
            email=email,
            user_id=user.id if user else None,
            success=False,
            ip_address=ip,
            user_agent=user_agent,
            reason="unknown_or_inactive",
        )
        db.commit()
        raise AuthenticationError("Invalid credentials.")

    if _is_account_locked(user):
        audit_services.record_login_attempt(
            db,
            email=email,
            user_id=user.id,
            success=False,
            ip_address=ip,
            user_agent=user_agent,
            reason="locked",
        )
        db.commit()
        raise AuthenticationError(
            "Account locked due to repeated failed attempts.",
            retry_after_seconds=_seconds_until_unlock(user),
        )

    if not verify_password(login_req.password, user.hashed_password):
        _register_failed_login(db, user, ip, user_agent)
        raise AuthenticationError("Invalid credentials.")

    _reset_failed_logins(db, user, ip, user_agent)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """
    Create a JWT access token for the user.

    Returns (token_string, expires_in_seconds).
    """
    expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user.id),
        "role": user.role.value if hasattr(user.role, "value") else str(user.role),
        "organization_id": user.organization_id,
    }
    access_token = create_access_token(data=payload, expires_delta=expires_delta)
    return access_token, int(ACCESS_TOKEN_EXPIRE_MINUTES * 60)


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


def _hash_payload(payload: dict) -> str:
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()


def register_idempotency_key(
    db: Session,
    *,
    scope: str,
    key: str,
    payload: dict,
) -> Tuple[models.IdempotencyKey, bool]:
    """
    Returns (row, created). A repeated key with the same payload returns the
    existing row with created=False.
    """
    if not key:
        raise ValueError("idempotency key is required")

    payload_hash = _hash_payload(payload)
    existing = (
        db.query(models.IdempotencyKey)
        .filter(
            models.IdempotencyKey.scope == scope,
            models.IdempotencyKey.key == key,
        )
        .first()
    )
    if existing:
        if existing.payload_hash != payload_hash:
            raise IdempotencyError("Idempotency key reuse with different payload.")
        return existing, False

    idem = models.IdempotencyKey(scope=scope, key=key, payload_hash=payload_hash)
    db.add(idem)
    db.flush()
    return idem, True


# ---------------------------------------------------------------------------
# Signup requests
# ---------------------------------------------------------------------------


def request_signup_approval(db: Session, data: schemas.SignupRequestCreate) -> models.SignupRequest:
    email = _normalise_email(data.email)
    existing = db.query(models.SignupRequest.id).filter(models.SignupRequest.email == email).first()
    if existing or get_user_by_email(db, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A signup request or account already exists for this email.",
        )

    request = models.SignupRequest(
        full_name=data.full_name.strip(),
        company=data.company.strip(),
        job_title=(data.job_title or "").strip() or None,
        phone=_normalise_phone(data.phone),
        email=email,
        job_type=data.job_type,
        status=models.SignupRequestStatus.PENDING,
    )
    db.add(request)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=None,
        actor_email=email,
        entity_type="signup_request",
        entity_id=request.id,
        action="CREATE",
    )
    return request


def list_signup_requests(
    db: Session,
    *,
    status_filter: Optional[models.SignupRequestStatus] = None,
) -> List[models.SignupRequest]:
    query = db.query(models.SignupRequest)
    if status_filter is not None:
        query = query.filter(models.SignupRequest.status == status_filter)
    return query.order_by(models.SignupRequest.requested_at.desc()).all()


def _get_signup_request_or_404(db: Session, request_id: str) -> models.SignupRequest:
    request = db.query(models.SignupRequest).filter(models.SignupRequest.id == request_id).first()
    if not request:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Signup request not found.")
    return request


def approve_signup_request(
    db: Session,
    *,
    request_id: str,
    data: schemas.SignupApproval,
    actor_user_id: Optional[str] = None,
) -> Tuple[models.SignupRequest, models.User, str]:
    """
    Create the account for a pending request and assign its sites.

    Office staff become customer managers, everybody else a worker. Workers
    need a company and at least one site. Returns the temporary password so
    the caller can hand it over; it is not stored on the request.
    """
    request = _get_signup_request_or_404(db, request_id)
    if request.status != models.SignupRequestStatus.PENDING:
        overriding = data.allow_override and request.status == models.SignupRequestStatus.REJECTED
        if not overriding:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Signup request was already processed.")

    role = (
        models.AccountRole.CUSTOMER_MANAGER
        if request.job_type == models.SignupJobType.OFFICE
        else models.AccountRole.WORKER
    )
    site_ids = list(dict.fromkeys(data.site_ids))
    if role == models.AccountRole.WORKER:
        if not data.organization_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Workers need a company.")
        if not site_ids:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Workers need at least one site.")
    for site_id in site_ids:
        site_services.get_site(db, site_id)

    temporary = generate_temporary_password()
    user = create_user(
        db,
        schemas.UserCreate(
            email=request.email,
            full_name=request.full_name,
            role=role,
            phone=request.phone,
            organization_id=data.organization_id,
            password=temporary,
        ),
        actor_user_id=actor_user_id,
        must_change_password=True,
    )
    for site_id in site_ids:
        site_services.assign_user_to_site(db, site_id=site_id, user_id=user.id, actor_user_id=actor_user_id)

    request.status = models.SignupRequestStatus.APPROVED
    request.approved_by = actor_user_id
    request.approved_at = datetime.now(timezone.utc)
    request.rejected_by = None
    request.rejected_at = None
    request.rejection_reason = None
    request.created_user_id = user.id
    db.add(request)
    db.flush()

    logger.info(
        "Signup request approved",
        extra={"signup_request_id": request.id, "user_id": user.id, "sites": len(site_ids)},
    )
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="signup_request",
        entity_id=request.id,
        action="APPROVE",
        details={"user_id": user.id, "role": role.value, "site_ids": site_ids},
    )
    return request, user, temporary


def reject_signup_request(
    db: Session,
    *,
    request_id: str,
    reason: Optional[str] = None,
    actor_user_id: Optional[str] = None,
) -> models.SignupRequest:
    request = _get_signup_request_or_404(db, request_id)
    if request.status != models.SignupRequestStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending requests can be rejected.")

    request.status = models.SignupRequestStatus.REJECTED
    request.rejected_by = actor_user_id
    request.rejected_at = datetime.now(timezone.utc)
    request.rejection_reason = reason
    db.add(request)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="signup_request",
        entity_id=request.id,
        action="REJECT",
        details={"reason": reason},
    )
    return request
