# backend/sitedb/apps/accounts/router_admin.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import require_admin
from sitedb.apps.notifications import services as notification_services
from . import models, schemas, services

router = APIRouter(prefix="/accounts/admin", tags=["accounts_admin"])


# ---------------------------------------------------------------------------
# ORGANIZATIONS
# ---------------------------------------------------------------------------


@router.get(
    "/organizations",
    response_model=List[schemas.OrganizationRead],
    summary="List partner organizations",
)
def list_organizations(
    search: Optional[str] = None,
    organization_type: Optional[models.OrganizationType] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_read_db),
    current_user: models.User = Depends(require_admin),
):
    return services.list_organizations(
        db,
        search=search,
        organization_type=organization_type,
        include_inactive=include_inactive,
    )


@router.post(
    "/organizations",
    response_model=schemas.OrganizationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an organization",
)
def create_organization(
    payload: schemas.OrganizationCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    org = services.create_organization(db, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(org)
    return org


@router.put(
    "/organizations/{organization_id}",
    response_model=schemas.OrganizationRead,
    summary="Update an organization",
)
def update_organization(
    organization_id: str,
    payload: schemas.OrganizationUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    org = services.update_organization(
        db,
        organization_id=organization_id,
        data=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(org)
    return org


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


@router.get(
    "/users",
    response_model=schemas.UserListResponse,
    summary="List users with search, role and status filters",
)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    search: Optional[str] = None,
    role: Optional[models.AccountRole] = None,
    is_active: Optional[bool] = None,
    organization_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: models.User = Depends(require_admin),
):
    return services.list_users(
        db,
        page=page,
        limit=limit,
        search=search,
        role=role,
        is_active=is_active,
        organization_id=organization_id,
    )


@router.post(
    "/users",
    response_model=schemas.UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.create_user(db, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(user)
    notification_services.send_welcome_email(db, user=user, sender_id=current_user.id)
    db.commit()
    return user


@router.get(
    "/users/{user_id}",
    response_model=schemas.UserRead,
    summary="Get a user",
)
def get_user(
    user_id: str,
    db: Session = Depends(get_read_db),
    current_user: models.User = Depends(require_admin),
):
    return services._get_user_or_404(db, user_id)


@router.put(
    "/users/{user_id}",
    response_model=schemas.UserRead,
    summary="Update a user",
)
def update_user(
    user_id: str,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services._get_user_or_404(db, user_id)
    user = services.update_user(db, user, payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(user)
    return user


@router.put(
    "/users/{user_id}/role",
    response_model=schemas.UserRead,
    summary="Change a user's role",
)
def update_user_role(
    user_id: str,
    payload: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user = services.update_user_role(
        db,
        user_id=user_id,
        role=payload.role,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(user)
    return user


@router.post(
    "/users/status",
    summary="Bulk activate or deactivate users",
)
def update_user_status(
    payload: schemas.UserStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    updated = services.update_user_status(
        db,
        user_ids=payload.user_ids,
        is_active=payload.is_active,
        actor_user_id=current_user.id,
    )
    db.commit()
    return {"updated": updated}


@router.post(
    "/users/delete",
    summary="Bulk delete users",
)
def delete_users(
    payload: schemas.UserBulkDelete,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    deleted = services.delete_users(
        db,
        user_ids=payload.user_ids,
        actor_user_id=current_user.id,
    )
    db.commit()
    return {"deleted": deleted}


@router.post(
    "/users/{user_id}/reset-password",
    response_model=schemas.PasswordResetResult,
    summary="Reset a user's password to a temporary one",
)
def reset_user_password(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user, temporary = services.reset_user_password(
        db,
        user_id=user_id,
        actor_user_id=current_user.id,
    )
    db.commit()
    notification_services.send_password_reset_email(
        db,
        user=user,
        temporary_password=temporary,
        sender_id=current_user.id,
    )
    db.commit()
    return schemas.PasswordResetResult(user_id=user.id, temporary_password=temporary)


# ---------------------------------------------------------------------------
# SIGNUP REQUESTS
# ---------------------------------------------------------------------------


@router.get(
    "/signup-requests",
    response_model=List[schemas.SignupRequestRead],
    summary="List signup requests",
)
def list_signup_requests(
    status_filter: Optional[models.SignupRequestStatus] = Query(None, alias="status"),
    db: Session = Depends(get_read_db),
    current_user: models.User = Depends(require_admin),
):
    return services.list_signup_requests(db, status_filter=status_filter)


@router.post(
    "/signup-requests/{request_id}/approve",
    response_model=schemas.SignupApprovalResult,
    summary="Approve a signup request and create the account",
)
def approve_signup_request(
    request_id: str,
    payload: schemas.SignupApproval,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    signup, user, temporary = services.approve_signup_request(
        db,
        request_id=request_id,
        data=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    notification_services.send_welcome_email(db, user=user, sender_id=current_user.id)
    db.commit()
    return schemas.SignupApprovalResult(
        request=schemas.SignupRequestRead.model_validate(signup),
        user_id=user.id,
        temporary_password=temporary,
    )


@router.post(
    "/signup-requests/{request_id}/reject",
    response_model=schemas.SignupRequestRead,
    summary="Reject a pending signup request",
)
def reject_signup_request(
    request_id: str,
    payload: schemas.SignupRejection,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    signup = services.reject_signup_request(
        db,
        request_id=request_id,
        reason=payload.reason,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(signup)
    return signup
