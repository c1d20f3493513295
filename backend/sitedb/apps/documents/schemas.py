from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .models import DocumentType, RequiredDocumentStatus, RequiredDocumentType, SharePermission


class DocumentMetadata(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    document_type: DocumentType = DocumentType.PERSONAL
    folder_path: Optional[str] = None
    is_public: bool = False
    site_id: Optional[str] = None


class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    document_type: Optional[DocumentType] = None
    folder_path: Optional[str] = None
    is_public: Optional[bool] = None
    site_id: Optional[str] = None


class DocumentShareRead(BaseModel):
    id: str
    shared_with_user_id: str
    permission: SharePermission
    shared_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DocumentRead(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    file_url: str
    file_name: str
    file_size: int
    mime_type: str
    document_type: DocumentType
    folder_path: Optional[str] = None
    owner_id: str
    is_public: bool
    site_id: Optional[str] = None
    shares: List[DocumentShareRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DocumentShareRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    permission: SharePermission = SharePermission.VIEW


class MarkRequired(BaseModel):
    required_type: RequiredDocumentType
    user_id: Optional[str] = None


class RequiredDocumentSubmit(BaseModel):
    required_type: RequiredDocumentType
    document_id: str


class RequiredDocumentReview(BaseModel):
    approve: bool
    notes: Optional[str] = None


class RequiredDocumentRead(BaseModel):
    id: str
    user_id: str
    document_type: RequiredDocumentType
    status: RequiredDocumentStatus
    document_id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    class Config:
        from_attributes = True


class RequiredDocumentStatusRow(BaseModel):
    document_type: RequiredDocumentType
    status: RequiredDocumentStatus
    record_id: Optional[str] = None
    document_id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None


class MarkupDocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    original_blueprint_url: str
    original_blueprint_filename: str
    markup_data: List[Any] = Field(default_factory=list)
    preview_image_url: Optional[str] = None
    site_id: Optional[str] = None


class MarkupDocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    markup_data: Optional[List[Any]] = None
    preview_image_url: Optional[str] = None


class MarkupLink(BaseModel):
    daily_report_id: Optional[str] = None


class MarkupDocumentRead(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    original_blueprint_url: str
    original_blueprint_filename: str
    markup_data: List[Any] = Field(default_factory=list)
    markup_count: int
    preview_image_url: Optional[str] = None
    site_id: Optional[str] = None
    linked_daily_report_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
