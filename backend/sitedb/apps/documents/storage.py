"""
Local filesystem storage for uploaded documents and report photos.

Files live under DOCUMENT_UPLOAD_DIR (default ``uploads/documents``). Callers
keep the storage key (a POSIX path relative to the root) on their rows and
resolve it back through `resolve_path`, which refuses anything that escapes
the root.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, UploadFile, status

from sitedb.utils.identifiers import storage_token

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredFile:
    key: str
    path: Path
    size: int


def get_upload_root() -> Path:
    root = Path(os.getenv("DOCUMENT_UPLOAD_DIR", "uploads/documents")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _ensure_safe_path(path: Path, root: Path) -> Path:
    resolved = path.resolve()
    if resolved != root and root not in resolved.parents:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid storage path.",
        )
    return resolved


def resolve_path(key: str) -> Path:
    root = get_upload_root()
    return _ensure_safe_path(root / key, root)


def save_upload(
    *,
    file: UploadFile,
    folder: str,
    max_bytes: Optional[int] = None,
) -> StoredFile:
    """
    Stream the upload to ``<root>/<folder>/<token><ext>``. A partially written
    file is removed when the size limit trips.
    """
    root = get_upload_root()
    target_dir = _ensure_safe_path(root / folder, root)
    target_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(file.filename or "").suffix.lower()
    dest_path = _ensure_safe_path(target_dir / f"{storage_token()}{ext}", root)

    total = 0
    try:
        with dest_path.open("wb") as out:
            while True:
                chunk = file.file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if max_bytes and total > max_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="Upload exceeds maximum file size.",
                    )
                out.write(chunk)
    except Exception:
        dest_path.unlink(missing_ok=True)
        raise

    key = dest_path.relative_to(root).as_posix()
    return StoredFile(key=key, path=dest_path, size=total)


def delete_file(key: Optional[str]) -> None:
    if not key:
        return
    try:
        path = resolve_path(key)
    except HTTPException:
        logger.warning("Refusing to delete file outside upload root", extra={"key": key})
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to delete stored file", extra={"key": key, "error": str(exc)})
