from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sitedb.database import Base
from sitedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentType(str, enum.Enum):
    PERSONAL = "personal"
    SHARED = "shared"
    BLUEPRINT = "blueprint"
    REQUIRED = "required"
    PROGRESS_PAYMENT = "progress_payment"
    REPORT = "report"
    CERTIFICATE = "certificate"
    OTHER = "other"


class SharePermission(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    DOWNLOAD = "download"


class RequiredDocumentType(str, enum.Enum):
    IDENTITY_VERIFICATION = "identity_verification"
    HEALTH_CERTIFICATE = "health_certificate"
    SAFETY_EDUCATION = "safety_education"
    INSURANCE_CERTIFICATE = "insurance_certificate"
    EMPLOYMENT_CONTRACT = "employment_contract"
    BANK_ACCOUNT = "bank_account"
    EMERGENCY_CONTACT = "emergency_contact"
    OTHER = "other"


class RequiredDocumentStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class Document(Base):
    """
    Uploaded file plus its metadata. `file_url` is the storage key relative
    to the upload root, never an absolute path.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_owner_type", "owner_id", "document_type"),
        Index("ix_documents_site", "site_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_url = Column(String(1024), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(128), nullable=False)
    document_type = Column(
        SAEnum(DocumentType, name="document_type_enum", native_enum=False),
        nullable=False,
        default=DocumentType.PERSONAL,
    )
    folder_path = Column(String(512), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    shares = relationship(
        "DocumentShare",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class DocumentShare(Base):
    __tablename__ = "document_shares"
    __table_args__ = (
        UniqueConstraint("document_id", "shared_with_user_id", name="uq_document_shares_doc_user"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    shared_with_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission = Column(
        SAEnum(SharePermission, name="document_share_permission_enum", native_enum=False),
        nullable=False,
        default=SharePermission.VIEW,
    )
    shared_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    document = relationship("Document", back_populates="shares")


class UserRequiredDocument(Base):
    __tablename__ = "user_required_documents"
    __table_args__ = (
        UniqueConstraint("user_id", "document_type", name="uq_user_required_documents_user_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(
        SAEnum(RequiredDocumentType, name="required_document_type_enum", native_enum=False),
        nullable=False,
    )
    status = Column(
        SAEnum(RequiredDocumentStatus, name="required_document_status_enum", native_enum=False),
        nullable=False,
        default=RequiredDocumentStatus.PENDING,
    )
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class MarkupDocument(Base):
    """Blueprint with drawing annotations; markup_data is stored as-is."""

    __tablename__ = "markup_documents"
    __table_args__ = (
        Index("ix_markup_documents_site_deleted", "site_id", "is_deleted"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    original_blueprint_url = Column(String(1024), nullable=False)
    original_blueprint_filename = Column(String(255), nullable=False)
    markup_data = Column(JSON, nullable=False, default=list)
    markup_count = Column(Integer, nullable=False, default=0)
    preview_image_url = Column(String(1024), nullable=True)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    linked_daily_report_id = Column(
        String(36), ForeignKey("daily_reports.id", ondelete="SET NULL"), nullable=True
    )
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
