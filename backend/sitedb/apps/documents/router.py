from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from sitedb.database import get_db, get_read_db
from sitedb.security import get_current_active_user, is_admin, require_admin
from sitedb.apps.accounts.models import User

from . import models, schemas, services, storage

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", response_model=schemas.DocumentRead, status_code=status.HTTP_201_CREATED)
def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    document_type: models.DocumentType = Form(models.DocumentType.PERSONAL),
    folder_path: Optional[str] = Form(None),
    is_public: bool = Form(False),
    site_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    metadata = schemas.DocumentMetadata(
        title=title,
        description=description,
        document_type=document_type,
        folder_path=folder_path,
        is_public=is_public,
        site_id=site_id,
    )
    document = services.upload_document(db, file=file, metadata=metadata, user=current_user)
    db.commit()
    db.refresh(document)
    return document


@router.get("", response_model=List[schemas.DocumentRead])
def list_documents(
    document_type: Optional[models.DocumentType] = None,
    folder_path: Optional[str] = None,
    site_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_documents(
        db,
        user=current_user,
        document_type=document_type,
        folder_path=folder_path,
        site_id=site_id,
        owner_id=owner_id,
        is_public=is_public,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/mine", response_model=List[schemas.DocumentRead])
def my_documents(
    document_type: Optional[models.DocumentType] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_my_documents(
        db, user=current_user, document_type=document_type, limit=limit, offset=offset
    )


@router.get("/shared", response_model=List[schemas.DocumentRead])
def shared_documents(
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_shared_documents(db, user=current_user)


# ---------------------------------------------------------------------------
# Required documents
# ---------------------------------------------------------------------------


@router.get("/required/status", response_model=List[schemas.RequiredDocumentStatusRow])
def required_document_status(
    user_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    # Non-admins only see their own checklist.
    target = user_id if user_id and is_admin(current_user) else current_user.id
    return services.list_required_document_status(db, user_id=target)


@router.post(
    "/required/submit",
    response_model=schemas.RequiredDocumentRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_required_document(
    payload: schemas.RequiredDocumentSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    record = services.submit_required_document(
        db,
        required_type=payload.required_type,
        document_id=payload.document_id,
        user=current_user,
    )
    db.commit()
    db.refresh(record)
    return record


@router.post("/required/{record_id}/review", response_model=schemas.RequiredDocumentRead)
def review_required_document(
    record_id: str,
    payload: schemas.RequiredDocumentReview,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    record = services.review_required_document(
        db,
        record_id=record_id,
        approve=payload.approve,
        notes=payload.notes,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(record)
    return record


# ---------------------------------------------------------------------------
# Markup documents
# ---------------------------------------------------------------------------


@router.get("/markup", response_model=List[schemas.MarkupDocumentRead])
def list_markup_documents(
    site_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.list_markup_documents(db, site_id=site_id, search=search, limit=limit, offset=offset)


@router.post(
    "/markup",
    response_model=schemas.MarkupDocumentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_markup_document(
    payload: schemas.MarkupDocumentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    markup = services.create_markup_document(db, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(markup)
    return markup


@router.get("/markup/{markup_id}", response_model=schemas.MarkupDocumentRead)
def get_markup_document(
    markup_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_markup_document(db, markup_id)


@router.put("/markup/{markup_id}", response_model=schemas.MarkupDocumentRead)
def update_markup_document(
    markup_id: str,
    payload: schemas.MarkupDocumentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    markup = services.update_markup_document(db, markup_id=markup_id, payload=payload, user=current_user)
    db.commit()
    db.refresh(markup)
    return markup


@router.patch("/markup/{markup_id}/link", response_model=schemas.MarkupDocumentRead)
def link_markup_document(
    markup_id: str,
    payload: schemas.MarkupLink,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    markup = services.link_markup_to_daily_report(
        db, markup_id=markup_id, daily_report_id=payload.daily_report_id, user=current_user
    )
    db.commit()
    db.refresh(markup)
    return markup


@router.delete("/markup/{markup_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_markup_document(
    markup_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    services.delete_markup_document(db, markup_id=markup_id, user=current_user)
    db.commit()


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------


@router.get("/{document_id}", response_model=schemas.DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    return services.get_visible_document(db, document_id=document_id, user=current_user)


@router.get("/{document_id}/download", response_class=FileResponse)
def download_document(
    document_id: str,
    db: Session = Depends(get_read_db),
    current_user: User = Depends(get_current_active_user),
):
    document, path = services.get_download_path(db, document_id=document_id, user=current_user)
    return FileResponse(path=str(path), media_type=document.mime_type, filename=document.file_name)


@router.put("/{document_id}", response_model=schemas.DocumentRead)
def update_document(
    document_id: str,
    payload: schemas.DocumentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    document = services.update_document(db, document_id=document_id, payload=payload, user=current_user)
    db.commit()
    db.refresh(document)
    return document


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    key = services.delete_document(db, document_id=document_id, user=current_user)
    db.commit()
    storage.delete_file(key)


@router.post("/{document_id}/share", response_model=schemas.DocumentRead)
def share_document(
    document_id: str,
    payload: schemas.DocumentShareRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    document = services.share_document(
        db,
        document_id=document_id,
        user_ids=payload.user_ids,
        permission=payload.permission,
        user=current_user,
    )
    db.commit()
    db.refresh(document)
    return document


@router.post("/{document_id}/required", response_model=schemas.RequiredDocumentRead)
def mark_document_required(
    document_id: str,
    payload: schemas.MarkRequired,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    record = services.mark_document_required(
        db,
        document_id=document_id,
        required_type=payload.required_type,
        user=current_user,
        user_id=payload.user_id,
    )
    db.commit()
    db.refresh(record)
    return record
