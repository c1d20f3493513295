from __future__ import annotations

import io

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from sitedb.apps.accounts.models import AccountRole
from sitedb.apps.documents import models, schemas, services, storage


@pytest.fixture(autouse=True)
def upload_root(tmp_path, monkeypatch):
    monkeypatch.setenv("DOCUMENT_UPLOAD_DIR", str(tmp_path / "uploads"))
    return tmp_path / "uploads"


def _upload(filename="계약서.pdf", content=b"%PDF-1.4 test", content_type="application/pdf"):
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def _store(db, owner, **metadata):
    document = services.upload_document(
        db,
        file=_upload(),
        metadata=schemas.DocumentMetadata(title=metadata.pop("title", "근로계약서"), **metadata),
        user=owner,
    )
    db.commit()
    return document


def test_upload_stores_file_under_root(db_session, make_user, upload_root):
    owner = make_user()
    document = _store(db_session, owner)

    assert document.file_size == len(b"%PDF-1.4 test")
    assert document.file_name == "계약서.pdf"
    stored = storage.resolve_path(document.file_url)
    assert stored.exists()
    assert upload_root.resolve() in stored.parents


def test_upload_rejects_disallowed_type(db_session, make_user, upload_root):
    owner = make_user()
    with pytest.raises(HTTPException) as exc:
        services.upload_document(
            db_session,
            file=_upload(filename="run.exe", content_type="application/x-msdownload"),
            metadata=schemas.DocumentMetadata(title="실행 파일"),
            user=owner,
        )
    assert exc.value.status_code == 400
    assert not any(upload_root.rglob("*.exe"))


def test_failed_record_creation_removes_stored_file(db_session, make_user, upload_root, monkeypatch):
    owner = make_user()

    def _broken_flush(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(db_session, "flush", _broken_flush)
    with pytest.raises(RuntimeError):
        services.upload_document(
            db_session,
            file=_upload(),
            metadata=schemas.DocumentMetadata(title="보험증서"),
            user=owner,
        )
    assert not any(p.is_file() for p in upload_root.rglob("*"))


def test_storage_refuses_paths_outside_root():
    with pytest.raises(HTTPException):
        storage.resolve_path("../../etc/passwd")


def test_visibility_covers_owner_public_and_shares(db_session, make_user):
    owner, viewer, stranger = make_user(), make_user(), make_user()
    private = _store(db_session, owner, title="개인 문서")
    public = _store(db_session, owner, title="공개 도면", is_public=True)

    assert {d.id for d in services.list_documents(db_session, user=stranger)} == {public.id}

    services.share_document(
        db_session,
        document_id=private.id,
        user_ids=[viewer.id],
        permission=models.SharePermission.VIEW,
        user=owner,
    )
    db_session.commit()

    assert {d.id for d in services.list_documents(db_session, user=viewer)} == {private.id, public.id}
    assert [d.id for d in services.get_shared_documents(db_session, user=viewer)] == [private.id]
    assert services.list_documents(db_session, user=viewer, search="도면")[0].id == public.id

    with pytest.raises(HTTPException) as exc:
        services.get_download_path(db_session, document_id=private.id, user=viewer)
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        services.get_visible_document(db_session, document_id=private.id, user=stranger)
    assert exc.value.status_code == 404


def test_only_owner_shares_and_share_is_upserted(db_session, make_user):
    owner, other = make_user(), make_user()
    document = _store(db_session, owner)

    with pytest.raises(HTTPException) as exc:
        services.share_document(
            db_session,
            document_id=document.id,
            user_ids=[owner.id],
            permission=models.SharePermission.VIEW,
            user=other,
        )
    assert exc.value.status_code == 403

    for permission in (models.SharePermission.VIEW, models.SharePermission.DOWNLOAD):
        services.share_document(
            db_session, document_id=document.id, user_ids=[other.id], permission=permission, user=owner
        )
    db_session.commit()

    shares = db_session.query(models.DocumentShare).all()
    assert len(shares) == 1
    assert shares[0].permission == models.SharePermission.DOWNLOAD
    _, path = services.get_download_path(db_session, document_id=document.id, user=other)
    assert path.exists()


def test_delete_keeps_file_until_commit(db_session, make_user):
    owner = make_user()
    document = _store(db_session, owner)
    path = storage.resolve_path(document.file_url)

    key = services.delete_document(db_session, document_id=document.id, user=owner)
    assert key == document.file_url
    assert path.exists()

    db_session.rollback()
    assert db_session.query(models.Document).count() == 1
    assert path.exists()

    key = services.delete_document(db_session, document_id=document.id, user=owner)
    db_session.commit()
    storage.delete_file(key)

    assert not path.exists()
    assert db_session.query(models.Document).count() == 0


def test_required_document_checklist_and_review(db_session, make_user):
    admin = make_user(AccountRole.ADMIN)
    worker = make_user()
    document = _store(db_session, worker, title="건강진단서")

    checklist = services.list_required_document_status(db_session, user_id=worker.id)
    assert len(checklist) == len(models.RequiredDocumentType)
    assert all(row.status == models.RequiredDocumentStatus.PENDING for row in checklist)

    record = services.submit_required_document(
        db_session,
        required_type=models.RequiredDocumentType.HEALTH_CERTIFICATE,
        document_id=document.id,
        user=worker,
    )
    db_session.commit()
    assert record.status == models.RequiredDocumentStatus.SUBMITTED
    assert document.document_type == models.DocumentType.REQUIRED

    services.review_required_document(
        db_session, record_id=record.id, approve=False, notes="흐릿함", actor_user_id=admin.id
    )
    assert record.status == models.RequiredDocumentStatus.REJECTED

    with pytest.raises(HTTPException) as exc:
        services.review_required_document(
            db_session, record_id=record.id, approve=True, notes=None, actor_user_id=admin.id
        )
    assert exc.value.status_code == 409

    services.mark_document_required(
        db_session,
        document_id=document.id,
        required_type=models.RequiredDocumentType.HEALTH_CERTIFICATE,
        user=worker,
    )
    services.review_required_document(
        db_session, record_id=record.id, approve=True, notes=None, actor_user_id=admin.id
    )
    db_session.commit()

    rows = {
        row.document_type: row
        for row in services.list_required_document_status(db_session, user_id=worker.id)
    }
    assert rows[models.RequiredDocumentType.HEALTH_CERTIFICATE].status == models.RequiredDocumentStatus.APPROVED
    assert rows[models.RequiredDocumentType.BANK_ACCOUNT].status == models.RequiredDocumentStatus.PENDING


def test_markup_count_tracks_data_and_delete_is_soft(db_session, make_user, make_site):
    author = make_user(AccountRole.SITE_MANAGER)
    site = make_site()
    markup = services.create_markup_document(
        db_session,
        payload=schemas.MarkupDocumentCreate(
            title="1층 평면도",
            original_blueprint_url="blueprints/floor1.png",
            original_blueprint_filename="floor1.png",
            markup_data=[{"type": "box"}],
            site_id=site.id,
        ),
        actor_user_id=author.id,
    )
    assert markup.markup_count == 1

    services.update_markup_document(
        db_session,
        markup_id=markup.id,
        payload=schemas.MarkupDocumentUpdate(markup_data=[{"type": "box"}, {"type": "text"}, {"type": "pen"}]),
        user=author,
    )
    assert markup.markup_count == 3

    with pytest.raises(HTTPException) as exc:
        services.link_markup_to_daily_report(
            db_session, markup_id=markup.id, daily_report_id="missing", user=author
        )
    assert exc.value.status_code == 404

    services.delete_markup_document(db_session, markup_id=markup.id, user=author)
    db_session.commit()

    assert services.list_markup_documents(db_session, site_id=site.id) == []
    assert db_session.query(models.MarkupDocument).count() == 1
