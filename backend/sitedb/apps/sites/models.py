from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SiteStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class SiteAssignmentRole(str, enum.Enum):
    WORKER = "worker"
    SITE_MANAGER = "site_manager"
    SUPERVISOR = "supervisor"


class Site(Base):
    __tablename__ = "sites"
    __table_args__ = (
        Index("ix_sites_status_deleted", "status", "is_deleted"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name = Column(String(255), nullable=False, index=True)
    address = Column(String(512), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SAEnum(SiteStatus, name="site_status_enum", native_enum=False),
        nullable=False,
        default=SiteStatus.ACTIVE,
        index=True,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    manager_name = Column(String(128), nullable=True)
    manager_phone = Column(String(32), nullable=True)
    safety_manager_name = Column(String(128), nullable=True)
    safety_manager_phone = Column(String(32), nullable=True)
    accommodation_name = Column(String(255), nullable=True)
    accommodation_address = Column(String(512), nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    assignments = relationship(
        "SiteAssignment",
        back_populates="site",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Site id={self.id} name={self.name!r} status={self.status}>"


class SiteAssignment(Base):
    """
    Links a user to a site. Rows are deactivated rather than deleted so the
    assignment history survives; at most one active row per user and site.
    """

    __tablename__ = "site_assignments"
    __table_args__ = (
        Index("ix_site_assignments_user_site", "user_id", "site_id"),
        Index("ix_site_assignments_site_active", "site_id", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(
        SAEnum(SiteAssignmentRole, name="site_assignment_role_enum", native_enum=False),
        nullable=False,
        default=SiteAssignmentRole.WORKER,
    )
    assigned_date = Column(Date, nullable=False)
    unassigned_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    site = relationship("Site", back_populates="assignments")
    user = relationship("User", lazy="joined")

    @property
    def user_full_name(self):
        return self.user.full_name if self.user else None

    @property
    def user_email(self):
        return self.user.email if self.user else None
