# backend/sitedb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """Roles used across the portal.

    Fine-grained checks per resource/action live in
    `sitedb.apps.validation.rules.validate_user_permissions`.
    """

    WORKER = "worker"
    SITE_MANAGER = "site_manager"
    CUSTOMER_MANAGER = "customer_manager"   # Partner company staff (restricted)
    ADMIN = "admin"
    SYSTEM_ADMIN = "system_admin"


class SignupJobType(str, enum.Enum):
    CONSTRUCTION = "construction"
    OFFICE = "office"


class SignupRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrganizationType(str, enum.Enum):
    GENERAL_CONTRACTOR = "general_contractor"
    SUBCONTRACTOR = "subcontractor"
    SUPPLIER = "supplier"
    CUSTOMER = "customer"


# ---------------------------------------------------------------------------
# ORGANIZATION
# ---------------------------------------------------------------------------


class Organization(Base):
    """
    Company that owns sites or employs users (head office, partners, suppliers).
    """

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    name = Column(String(255), nullable=False, index=True)
    organization_type = Column(
        SAEnum(OrganizationType, name="organization_type_enum", native_enum=False),
        nullable=False,
        default=OrganizationType.SUBCONTRACTOR,
    )
    business_registration_number = Column(String(16), nullable=True, unique=True)
    phone = Column(String(32), nullable=True)
    address = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    users = relationship("User", back_populates="organization", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# USER
# ---------------------------------------------------------------------------


class User(Base):
    """
    Portal account. Email is globally unique and stored lower-cased.

    Login counters (`login_attempts`, `lockout_count`, `locked_until`) drive
    the escalating lockout schedule in accounts.services.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_role_active", "role", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)

    role = Column(
        SAEnum(AccountRole, name="account_role_enum", native_enum=False),
        nullable=False,
        default=AccountRole.WORKER,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    hashed_password = Column(String(255), nullable=False)
    must_change_password = Column(Boolean, nullable=False, default=False)
    login_attempts = Column(Integer, nullable=False, default=0)
    lockout_count = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(64), nullable=True)
    last_login_user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    organization = relationship("Organization", back_populates="users", lazy="joined")

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


# ---------------------------------------------------------------------------
# IDEMPOTENCY
# ---------------------------------------------------------------------------


class IdempotencyKey(Base):
    """
    Replay guard for client retries (Idempotency-Key header).
    """

    __tablename__ = "idempotency_keys"
    __table_args__ = (
        UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    scope = Column(String(128), nullable=False, index=True)
    key = Column(String(128), nullable=False)
    payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # Id of the row the first request produced; replays return it.
    resource_id = Column(String(36), nullable=True)


# ---------------------------------------------------------------------------
# SIGNUP REQUESTS
# ---------------------------------------------------------------------------


class SignupRequest(Base):
    """
    Self-service access request. An admin approval creates the account;
    a rejected request can still be approved later with an explicit override.
    """

    __tablename__ = "signup_requests"
    __table_args__ = (
        UniqueConstraint("email", name="uq_signup_requests_email"),
        Index("ix_signup_requests_status", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    full_name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=False)
    job_title = Column(String(128), nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=False)
    job_type = Column(
        SAEnum(SignupJobType, name="signup_job_type_enum", native_enum=False),
        nullable=False,
        default=SignupJobType.CONSTRUCTION,
    )
    status = Column(
        SAEnum(SignupRequestStatus, name="signup_request_status_enum", native_enum=False),
        nullable=False,
        default=SignupRequestStatus.PENDING,
    )
    requested_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def __repr__(self) -> str:
        return f"<SignupRequest id={self.id} email={self.email} status={self.status}>"
