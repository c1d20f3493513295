# backend/sitedb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from .models import AccountRole, OrganizationType, SignupJobType, SignupRequestStatus

# ---------------------------------------------------------------------------
# ORGANIZATIONS
# ---------------------------------------------------------------------------


class OrganizationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    organization_type: OrganizationType = OrganizationType.SUBCONTRACTOR
    business_registration_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class OrganizationCreate(OrganizationBase):
    pass


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None
    organization_type: Optional[OrganizationType] = None
    business_registration_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class OrganizationRead(OrganizationBase):
    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# USER SCHEMAS
# ---------------------------------------------------------------------------


class UserBase(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    role: AccountRole = AccountRole.WORKER
    phone: Optional[str] = None
    organization_id: Optional[str] = None


class UserCreate(UserBase):
    password: str


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[AccountRole] = None
    organization_id: Optional[str] = None
    is_active: Optional[bool] = None


class UserRead(UserBase):
    id: str
    is_active: bool
    must_change_password: bool = False
    last_login_at: Optional[datetime] = None
    last_login_ip: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    items: List[UserRead]
    total: int
    pages: int


class UserRoleUpdate(BaseModel):
    role: AccountRole


class UserStatusUpdate(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    is_active: bool


class UserBulkDelete(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)


class PasswordResetResult(BaseModel):
    user_id: str
    temporary_password: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


# ---------------------------------------------------------------------------
# AUTH
# ---------------------------------------------------------------------------


class FirstAdminCreate(BaseModel):
    email: EmailStr
    full_name: str
    password: str
    phone: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


# ---------------------------------------------------------------------------
# SIGNUP REQUESTS
# ---------------------------------------------------------------------------


class SignupRequestCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    company: str = Field(..., min_length=1, max_length=255)
    job_title: Optional[str] = Field(None, max_length=128)
    phone: Optional[str] = None
    email: EmailStr
    job_type: SignupJobType = SignupJobType.CONSTRUCTION


class SignupRequestRead(BaseModel):
    id: str
    full_name: str
    company: str
    job_title: Optional[str] = None
    phone: Optional[str] = None
    email: str
    job_type: SignupJobType
    status: SignupRequestStatus
    requested_at: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_user_id: Optional[str] = None

    class Config:
        from_attributes = True


class SignupApproval(BaseModel):
    organization_id: Optional[str] = None
    site_ids: List[str] = Field(default_factory=list)
    allow_override: bool = False


class SignupRejection(BaseModel):
    reason: Optional[str] = None


class SignupApprovalResult(BaseModel):
    request: SignupRequestRead
    user_id: str
    temporary_password: str
