from __future__ import annotations

import io
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulkimport.core.config import settings
from bulkimport.models import ImportJob, ImportJobStatus
from bulkimport.models.import_job import MAX_FILENAME_LENGTH
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import ValidationError
from bulkimport.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)

FILENAME_SANITIZE_RE = re.compile(r"[^A-Za-z0-9._-]+")
PUBLIC_URL_SCHEMES = {"http", "https", "file"}

RESULT_PENDING = "pending"
RESULT_ERROR = "error"


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class FileResult:
    filename: str
    status: str
    job_id: uuid.UUID | None = None
    code: str | None = None
    detail: str | None = None


def _safe_filename(raw_filename: str | None) -> str:
    fallback = "import.txt"
    candidate = (raw_filename or fallback).strip()
    candidate = Path(candidate).name
    candidate = FILENAME_SANITIZE_RE.sub("_", candidate)
    candidate = candidate.strip("._") or fallback
    if len(candidate) > 200:
        stem = Path(candidate).stem[:160] or "import"
        suffix = Path(candidate).suffix[:20]
        candidate = f"{stem}{suffix}"
    return candidate


def _has_allowed_extension(filename: str) -> bool:
    lowered = filename.lower()
    return any(lowered.endswith(ext.lower()) for ext in settings.import_allowed_extensions)


def _storage_key(filename: str) -> str:
    # Fresh random prefix per upload; keys are never reused.
    return f"{settings.import_key_prefix}/{uuid.uuid4()}_{_safe_filename(filename)}"


def _is_well_formed_public_url(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in PUBLIC_URL_SCHEMES:
        return False
    if parsed.scheme != "file" and not parsed.netloc:
        return False
    return bool(parsed.path) and parsed.path.rstrip("/") != ""


def _error(upload: UploadedFile, code: ErrorCode, detail: str) -> FileResult:
    return FileResult(filename=upload.filename, status=RESULT_ERROR, code=code.value, detail=detail)


def _store_one(db: Session, storage: StorageAdapter, upload: UploadedFile) -> FileResult:
    if len(upload.filename) > MAX_FILENAME_LENGTH:
        return _error(
            upload,
            ErrorCode.FILENAME_TOO_LONG,
            f"file name exceeds {MAX_FILENAME_LENGTH} characters",
        )
    if not upload.content:
        return _error(upload, ErrorCode.EMPTY_FILE, "uploaded file is empty")
    if len(upload.content) > settings.import_max_upload_bytes:
        return _error(
            upload,
            ErrorCode.FILE_TOO_LARGE,
            f"file exceeds max size of {settings.import_max_upload_bytes} bytes",
        )

    key = _storage_key(upload.filename)
    try:
        content_type = upload.content_type or "text/plain"
        storage.put_file(key, io.BytesIO(upload.content), content_type=content_type)
        public_url = storage.public_url(key)
        stored = storage.exists(key)
    except Exception as exc:
        logger.error(
            "import_upload_failed",
            filename=upload.filename,
            key=key,
            error=str(exc),
        )
        return _error(upload, ErrorCode.STORAGE_WRITE_FAILED, "failed to store uploaded file")

    if not stored or not _is_well_formed_public_url(public_url):
        logger.error(
            "import_upload_reference_invalid",
            filename=upload.filename,
            key=key,
            public_url=public_url,
            stored=stored,
        )
        return _error(
            upload,
            ErrorCode.STORAGE_REFERENCE_INVALID,
            "storage did not return a usable file reference",
        )

    job = ImportJob(
        filename=upload.filename,
        file_ref=key,
        status=ImportJobStatus.PENDING,
    )
    db.add(job)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "import_job_insert_failed",
            filename=upload.filename,
            key=key,
            error=str(exc),
        )
        try:
            storage.delete(key)
        except Exception as cleanup_exc:
            logger.warning("import_upload_orphaned", key=key, error=str(cleanup_exc))
        return _error(upload, ErrorCode.JOB_STORE_UNAVAILABLE, "failed to record import job")

    logger.info("import_job_created", job_id=str(job.id), filename=job.filename, key=key)
    return FileResult(filename=upload.filename, status=RESULT_PENDING, job_id=job.id)


def submit_import_batch(
    db: Session,
    storage: StorageAdapter,
    files: list[UploadedFile],
) -> list[FileResult]:
    """Store each acceptable file and queue one import job per file.

    Files are handled independently: a rejected or failed file is reported in
    its own result entry and never rolls back files already committed.
    Raises ValidationError when the batch is empty or no file has an
    accepted extension.
    """
    if not files:
        raise ValidationError(ErrorCode.NO_FILES.value, "no files uploaded")

    accepted = [f for f in files if _has_allowed_extension(f.filename)]
    if not accepted:
        allowed = ", ".join(settings.import_allowed_extensions)
        raise ValidationError(
            ErrorCode.NO_ACCEPTED_FILES.value,
            f"no files accepted; allowed extensions: {allowed}",
        )

    results: list[FileResult] = []
    for upload in files:
        if not _has_allowed_extension(upload.filename):
            results.append(
                _error(
                    upload,
                    ErrorCode.INVALID_FILE_EXTENSION,
                    f"only {', '.join(settings.import_allowed_extensions)} files are accepted",
                )
            )
            continue
        results.append(_store_one(db, storage, upload))

    logger.info(
        "import_batch_submitted",
        files=len(files),
        accepted=sum(1 for r in results if r.status == RESULT_PENDING),
    )
    return results
