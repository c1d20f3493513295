from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitedb.security import is_admin
from sitedb.apps.accounts import models as account_models
from sitedb.apps.audit import services as audit_services
from sitedb.apps.daily_reports import models as report_models
from sitedb.apps.notifications import services as notification_services
from sitedb.apps.notifications.models import NotificationType
from sitedb.apps.validation import rules

from . import models, schemas, storage

logger = logging.getLogger(__name__)

DOWNLOAD_PERMISSIONS = {models.SharePermission.DOWNLOAD, models.SharePermission.EDIT}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Access helpers
# ---------------------------------------------------------------------------


def _share_for(document: models.Document, user_id: str) -> Optional[models.DocumentShare]:
    for share in document.shares:
        if share.shared_with_user_id == user_id:
            return share
    return None


def can_view(user: account_models.User, document: models.Document) -> bool:
    if is_admin(user) or document.owner_id == user.id or document.is_public:
        return True
    return _share_for(document, user.id) is not None


def can_download(user: account_models.User, document: models.Document) -> bool:
    if is_admin(user) or document.owner_id == user.id or document.is_public:
        return True
    share = _share_for(document, user.id)
    return share is not None and share.permission in DOWNLOAD_PERMISSIONS


def _ensure_owner_or_admin(user: account_models.User, document: models.Document) -> None:
    if document.owner_id != user.id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can change this document.")


def get_document(db: Session, document_id: str) -> models.Document:
    document = db.query(models.Document).filter(models.Document.id == document_id).first()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found.")
    return document


def get_visible_document(db: Session, *, document_id: str, user: account_models.User) -> models.Document:
    document = get_document(db, document_id)
    if not can_view(user, document):
        # Hide existence from callers without access.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found.")
    return document


# ---------------------------------------------------------------------------
# Upload / CRUD
# ---------------------------------------------------------------------------


def upload_document(
    db: Session,
    *,
    file: UploadFile,
    metadata: schemas.DocumentMetadata,
    user: account_models.User,
) -> models.Document:
    mime_type = file.content_type or "application/octet-stream"
    declared_size = getattr(file, "size", None) or 0
    rules.require_valid(
        rules.validate_document_metadata(
            title=metadata.title,
            description=metadata.description,
            file_type=mime_type,
            file_size=declared_size,
        )
    )

    stored = storage.save_upload(
        file=file,
        folder=f"users/{user.id}",
        max_bytes=rules.MAX_DOCUMENT_BYTES,
    )
    try:
        document = models.Document(
            title=metadata.title.strip(),
            description=metadata.description,
            file_url=stored.key,
            file_name=Path(file.filename or "upload").name,
            file_size=stored.size,
            mime_type=mime_type,
            document_type=metadata.document_type,
            folder_path=metadata.folder_path,
            owner_id=user.id,
            is_public=metadata.is_public,
            site_id=metadata.site_id,
        )
        db.add(document)
        db.flush()
    except Exception:
        logger.warning("Document record creation failed; removing stored file", extra={"key": stored.key})
        storage.delete_file(stored.key)
        raise

    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="document",
        entity_id=document.id,
        action="UPLOAD",
        details={"file_name": document.file_name, "file_size": document.file_size},
    )
    return document


def list_documents(
    db: Session,
    *,
    user: account_models.User,
    document_type: Optional[models.DocumentType] = None,
    folder_path: Optional[str] = None,
    site_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.Document]:
    query = db.query(models.Document)
    if not is_admin(user):
        shared_ids = db.query(models.DocumentShare.document_id).filter(
            models.DocumentShare.shared_with_user_id == user.id
        )
        query = query.filter(
            or_(
                models.Document.owner_id == user.id,
                models.Document.is_public.is_(True),
                models.Document.id.in_(shared_ids),
            )
        )
    if document_type:
        query = query.filter(models.Document.document_type == document_type)
    if folder_path:
        query = query.filter(models.Document.folder_path == folder_path)
    if site_id:
        query = query.filter(models.Document.site_id == site_id)
    if owner_id:
        query = query.filter(models.Document.owner_id == owner_id)
    if is_public is not None:
        query = query.filter(models.Document.is_public.is_(is_public))
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.Document.title).like(pattern),
                func.lower(models.Document.description).like(pattern),
            )
        )
    return query.order_by(models.Document.created_at.desc()).offset(offset).limit(limit).all()


def get_my_documents(
    db: Session,
    *,
    user: account_models.User,
    document_type: Optional[models.DocumentType] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.Document]:
    query = db.query(models.Document).filter(models.Document.owner_id == user.id)
    if document_type:
        query = query.filter(models.Document.document_type == document_type)
    return query.order_by(models.Document.created_at.desc()).offset(offset).limit(limit).all()


def update_document(
    db: Session,
    *,
    document_id: str,
    payload: schemas.DocumentUpdate,
    user: account_models.User,
) -> models.Document:
    document = get_document(db, document_id)
    _ensure_owner_or_admin(user, document)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(document, field, value)
    db.add(document)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="document",
        entity_id=document.id,
        action="UPDATE",
        details={key: str(value) for key, value in changes.items()},
    )
    return document


def delete_document(db: Session, *, document_id: str, user: account_models.User) -> str:
    """
    Delete the row and return its storage key. The caller removes the file
    once the transaction has committed.
    """
    document = get_document(db, document_id)
    _ensure_owner_or_admin(user, document)
    key = document.file_url
    db.delete(document)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="document",
        entity_id=document_id,
        action="DELETE",
        details={"file_name": document.file_name},
    )
    return key


def get_download_path(db: Session, *, document_id: str, user: account_models.User) -> tuple:
    document = get_visible_document(db, document_id=document_id, user=user)
    if not can_download(user, document):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Download not permitted.")
    path = storage.resolve_path(document.file_url)
    if not path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stored file is missing.")
    return document, path


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


def share_document(
    db: Session,
    *,
    document_id: str,
    user_ids: Iterable[str],
    permission: models.SharePermission,
    user: account_models.User,
) -> models.Document:
    document = get_document(db, document_id)
    if document.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can share this document.")

    targets = [uid for uid in dict.fromkeys(user_ids) if uid != user.id]
    known = {
        row.id
        for row in db.query(account_models.User.id).filter(account_models.User.id.in_(targets)).all()
    }
    missing = [uid for uid in targets if uid not in known]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown users: {', '.join(missing)}")

    for target_id in targets:
        share = _share_for(document, target_id)
        if share is None:
            document.shares.append(
                models.DocumentShare(
                    shared_with_user_id=target_id,
                    permission=permission,
                    shared_by=user.id,
                )
            )
        else:
            share.permission = permission
            share.shared_by = user.id
    db.add(document)
    db.flush()

    notification_services.notify_users(
        db,
        user_ids=targets,
        title="문서 공유",
        message=f"{user.full_name}님이 '{document.title}' 문서를 공유했습니다.",
        type=NotificationType.INFO,
        action_url=f"/documents/{document.id}",
        created_by=user.id,
    )
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="document",
        entity_id=document.id,
        action="SHARE",
        details={"user_ids": targets, "permission": permission.value},
    )
    return document


def get_shared_documents(db: Session, *, user: account_models.User) -> List[models.Document]:
    return (
        db.query(models.Document)
        .join(models.DocumentShare, models.DocumentShare.document_id == models.Document.id)
        .filter(models.DocumentShare.shared_with_user_id == user.id)
        .order_by(models.DocumentShare.created_at.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Required documents
# ---------------------------------------------------------------------------


def _required_record(
    db: Session, *, user_id: str, required_type: models.RequiredDocumentType
) -> Optional[models.UserRequiredDocument]:
    return (
        db.query(models.UserRequiredDocument)
        .filter(
            models.UserRequiredDocument.user_id == user_id,
            models.UserRequiredDocument.document_type == required_type,
        )
        .first()
    )


def _submit_required(
    db: Session,
    *,
    user_id: str,
    required_type: models.RequiredDocumentType,
    document: models.Document,
) -> models.UserRequiredDocument:
    record = _required_record(db, user_id=user_id, required_type=required_type)
    if record is None:
        record = models.UserRequiredDocument(user_id=user_id, document_type=required_type)
    elif record.status == models.RequiredDocumentStatus.APPROVED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This document type is already approved.")
    record.document_id = document.id
    record.status = models.RequiredDocumentStatus.SUBMITTED
    record.submitted_at = _utcnow()
    record.reviewed_by = None
    record.reviewed_at = None
    record.review_notes = None
    db.add(record)
    db.flush()
    return record


def mark_document_required(
    db: Session,
    *,
    document_id: str,
    required_type: models.RequiredDocumentType,
    user: account_models.User,
    user_id: Optional[str] = None,
) -> models.UserRequiredDocument:
    document = get_document(db, document_id)
    _ensure_owner_or_admin(user, document)
    target_user_id = user_id or document.owner_id
    if target_user_id != document.owner_id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot submit for another user.")

    document.document_type = models.DocumentType.REQUIRED
    db.add(document)
    record = _submit_required(db, user_id=target_user_id, required_type=required_type, document=document)
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="required_document",
        entity_id=record.id,
        action="SUBMIT",
        details={"document_type": required_type.value, "document_id": document.id},
    )
    return record


def submit_required_document(
    db: Session,
    *,
    required_type: models.RequiredDocumentType,
    document_id: str,
    user: account_models.User,
) -> models.UserRequiredDocument:
    document = get_document(db, document_id)
    if document.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only submit your own documents.")
    document.document_type = models.DocumentType.REQUIRED
    db.add(document)
    record = _submit_required(db, user_id=user.id, required_type=required_type, document=document)

    notification_services.notify_admins(
        db,
        title="필수 서류 제출",
        message=f"{user.full_name}님이 필수 서류({required_type.value})를 제출했습니다.",
        action_url=f"/documents/required/{record.id}",
    )
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="required_document",
        entity_id=record.id,
        action="SUBMIT",
        details={"document_type": required_type.value, "document_id": document.id},
    )
    return record


def review_required_document(
    db: Session,
    *,
    record_id: str,
    approve: bool,
    notes: Optional[str],
    actor_user_id: str,
) -> models.UserRequiredDocument:
    record = (
        db.query(models.UserRequiredDocument)
        .filter(models.UserRequiredDocument.id == record_id)
        .first()
    )
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Required document not found.")
    if record.status != models.RequiredDocumentStatus.SUBMITTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only submitted documents can be reviewed.")

    record.status = models.RequiredDocumentStatus.APPROVED if approve else models.RequiredDocumentStatus.REJECTED
    record.reviewed_by = actor_user_id
    record.reviewed_at = _utcnow()
    record.review_notes = notes
    db.add(record)
    db.flush()

    notification_services.create_notification(
        db,
        user_id=record.user_id,
        title="필수 서류 승인" if approve else "필수 서류 반려",
        message=notes or ("서류가 승인되었습니다." if approve else "서류가 반려되었습니다. 다시 제출해 주세요."),
        type=NotificationType.SUCCESS if approve else NotificationType.WARNING,
        action_url="/documents/required",
        created_by=actor_user_id,
    )
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="required_document",
        entity_id=record.id,
        action="APPROVE" if approve else "REJECT",
        details={"notes": notes},
    )
    return record


def list_required_document_status(db: Session, *, user_id: str) -> List[schemas.RequiredDocumentStatusRow]:
    records = {
        r.document_type: r
        for r in db.query(models.UserRequiredDocument)
        .filter(models.UserRequiredDocument.user_id == user_id)
        .all()
    }
    rows = []
    for required_type in models.RequiredDocumentType:
        record = records.get(required_type)
        if record is None:
            rows.append(
                schemas.RequiredDocumentStatusRow(
                    document_type=required_type,
                    status=models.RequiredDocumentStatus.PENDING,
                )
            )
            continue
        rows.append(
            schemas.RequiredDocumentStatusRow(
                document_type=required_type,
                status=record.status,
                record_id=record.id,
                document_id=record.document_id,
                submitted_at=record.submitted_at,
                reviewed_at=record.reviewed_at,
                review_notes=record.review_notes,
            )
        )
    return rows


# ---------------------------------------------------------------------------
# Markup documents
# ---------------------------------------------------------------------------


def create_markup_document(
    db: Session,
    *,
    payload: schemas.MarkupDocumentCreate,
    actor_user_id: str,
) -> models.MarkupDocument:
    markup = models.MarkupDocument(
        title=payload.title.strip(),
        description=payload.description,
        original_blueprint_url=payload.original_blueprint_url,
        original_blueprint_filename=payload.original_blueprint_filename,
        markup_data=list(payload.markup_data),
        markup_count=len(payload.markup_data),
        preview_image_url=payload.preview_image_url,
        site_id=payload.site_id,
        created_by=actor_user_id,
    )
    db.add(markup)
    db.flush()
    return markup


def list_markup_documents(
    db: Session,
    *,
    site_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.MarkupDocument]:
    query = db.query(models.MarkupDocument).filter(models.MarkupDocument.is_deleted.is_(False))
    if site_id:
        query = query.filter(models.MarkupDocument.site_id == site_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(models.MarkupDocument.title).like(pattern),
                func.lower(models.MarkupDocument.description).like(pattern),
            )
        )
    return query.order_by(models.MarkupDocument.updated_at.desc()).offset(offset).limit(limit).all()


def get_markup_document(db: Session, markup_id: str) -> models.MarkupDocument:
    markup = (
        db.query(models.MarkupDocument)
        .filter(
            models.MarkupDocument.id == markup_id,
            models.MarkupDocument.is_deleted.is_(False),
        )
        .first()
    )
    if not markup:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Markup document not found.")
    return markup


def _ensure_markup_editor(user: account_models.User, markup: models.MarkupDocument) -> None:
    if markup.created_by != user.id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can change this markup.")


def update_markup_document(
    db: Session,
    *,
    markup_id: str,
    payload: schemas.MarkupDocumentUpdate,
    user: account_models.User,
) -> models.MarkupDocument:
    markup = get_markup_document(db, markup_id)
    _ensure_markup_editor(user, markup)
    changes = payload.model_dump(exclude_unset=True)
    if "markup_data" in changes:
        data = list(changes.pop("markup_data") or [])
        markup.markup_data = data
        markup.markup_count = len(data)
    for field, value in changes.items():
        setattr(markup, field, value)
    db.add(markup)
    db.flush()
    return markup


def link_markup_to_daily_report(
    db: Session,
    *,
    markup_id: str,
    daily_report_id: Optional[str],
    user: account_models.User,
) -> models.MarkupDocument:
    markup = get_markup_document(db, markup_id)
    _ensure_markup_editor(user, markup)
    if daily_report_id:
        exists = (
            db.query(report_models.DailyReport.id)
            .filter(report_models.DailyReport.id == daily_report_id)
            .first()
        )
        if not exists:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Daily report not found.")
    markup.linked_daily_report_id = daily_report_id
    db.add(markup)
    db.flush()
    return markup


def delete_markup_document(db: Session, *, markup_id: str, user: account_models.User) -> None:
    markup = get_markup_document(db, markup_id)
    _ensure_markup_editor(user, markup)
    markup.is_deleted = True
    db.add(markup)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=user.id,
        entity_type="markup_document",
        entity_id=markup.id,
        action="DELETE",
    )
