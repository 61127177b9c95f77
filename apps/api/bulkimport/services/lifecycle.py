from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulkimport.models import ImportJob, ImportJobStatus, KnowledgeEntry
from bulkimport.models.base import utcnow
from bulkimport.models.import_job import ACTIVE_STATUSES
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from bulkimport.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)

# cancelled -> cancelled is a re-confirmation, not a new transition.
ALLOWED_TRANSITIONS: dict[ImportJobStatus, frozenset[ImportJobStatus]] = {
    ImportJobStatus.PENDING: frozenset({ImportJobStatus.PROCESSING, ImportJobStatus.CANCELLED}),
    ImportJobStatus.PROCESSING: frozenset(
        {ImportJobStatus.COMPLETED, ImportJobStatus.FAILED, ImportJobStatus.CANCELLED}
    ),
    ImportJobStatus.COMPLETED: frozenset(),
    ImportJobStatus.FAILED: frozenset(),
    ImportJobStatus.CANCELLED: frozenset({ImportJobStatus.CANCELLED}),
}


@dataclass(frozen=True)
class CancelResult:
    deleted_count: int
    job_id: uuid.UUID
    filename: str


@dataclass(frozen=True)
class ClearResult:
    deleted_jobs: int
    deleted_files: int = 0


def can_transition(current: ImportJobStatus, target: ImportJobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition_job(
    job: ImportJob,
    target: ImportJobStatus,
    *,
    error_message: str | None = None,
) -> None:
    if not can_transition(job.status, target):
        raise ConflictError(
            ErrorCode.INVALID_TRANSITION.value,
            f"cannot move job from {job.status.value} to {target.value}",
        )
    job.status = target
    job.updated_at = utcnow()
    if error_message is not None:
        job.error_message = error_message


def cancel_message(deleted_count: int) -> str:
    return f"Cancelled by user. Deleted {deleted_count} records."


def parse_job_id(job_id: Any) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except (TypeError, ValueError) as exc:
        raise ValidationError(ErrorCode.INVALID_JOB_ID.value, "job id is not a valid UUID") from exc


def _store_error(operation: str, exc: SQLAlchemyError, **context: Any) -> DependencyError:
    logger.error("job_store_error", operation=operation, error=str(exc), **context)
    return DependencyError(ErrorCode.JOB_STORE_UNAVAILABLE.value, "job store unavailable")


def _is_storage_key(file_ref: str | None) -> bool:
    # Legacy rows may hold full public URLs; those are not keys we can delete.
    return bool(file_ref) and not urlparse(file_ref).scheme


def cancel_job(db: Session, job_id: Any) -> CancelResult:
    """Cancel a queued or running job and delete the records it produced.

    Compensation uses the job's created_at as a watermark: knowledge entries
    created at or after it are deleted unless they are attributed to a
    different job. Entries older than the watermark are never touched. This
    can still over-delete unattributed entries created concurrently by other
    writers; that trade-off is accepted.

    Re-cancelling an already cancelled job is safe: whatever is left is
    deleted again (normally nothing) and the job stays cancelled.
    """
    job_uuid = parse_job_id(job_id)

    try:
        job = db.scalar(
            select(ImportJob)
            .where(ImportJob.id == job_uuid)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not job:
            raise NotFoundError(ErrorCode.JOB_NOT_FOUND.value, "job not found")

        if not can_transition(job.status, ImportJobStatus.CANCELLED):
            raise ConflictError(
                ErrorCode.JOB_NOT_CANCELLABLE.value,
                f"job is already {job.status.value}",
            )

        watermark = job.created_at
        result = db.execute(
            delete(KnowledgeEntry)
            .where(
                KnowledgeEntry.created_at >= watermark,
                or_(
                    KnowledgeEntry.import_job_id == job.id,
                    KnowledgeEntry.import_job_id.is_(None),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        deleted_count = int(result.rowcount or 0)

        already_cancelled = job.status == ImportJobStatus.CANCELLED
        if not already_cancelled or deleted_count > 0 or job.error_message is None:
            transition_job(job, ImportJobStatus.CANCELLED, error_message=cancel_message(deleted_count))

        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error("cancel_job", exc, job_id=str(job_uuid)) from exc

    logger.info(
        "import_job_cancelled",
        job_id=str(job.id),
        filename=job.filename,
        deleted_count=deleted_count,
        reconfirmed=already_cancelled,
    )
    return CancelResult(deleted_count=deleted_count, job_id=job.id, filename=job.filename)


def _select_active_jobs(db: Session, operation: str) -> list[ImportJob]:
    try:
        return list(
            db.scalars(select(ImportJob).where(ImportJob.status.in_(ACTIVE_STATUSES))).all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error(operation, exc) from exc


def _delete_jobs(db: Session, job_ids: list[uuid.UUID], operation: str) -> int:
    try:
        result = db.execute(
            delete(ImportJob)
            .where(ImportJob.id.in_(job_ids), ImportJob.status.in_(ACTIVE_STATUSES))
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error(operation, exc, jobs=len(job_ids)) from exc
    return int(result.rowcount or 0)


def clear_pending_jobs(db: Session, storage: StorageAdapter) -> ClearResult:
    """Delete every pending/processing job and, best effort, its uploaded file.

    Storage cleanup runs first and may fail without stopping the row
    deletion; orphaned files are acceptable, stale queue rows are not.
    """
    jobs = _select_active_jobs(db, "clear_pending_jobs")
    if not jobs:
        logger.info("import_queue_clear_noop")
        return ClearResult(deleted_jobs=0, deleted_files=0)

    file_refs = [job.file_ref for job in jobs if _is_storage_key(job.file_ref)]
    deleted_files = 0
    if file_refs:
        try:
            deleted_files = storage.delete_many(file_refs)
        except Exception as exc:
            logger.warning(
                "import_files_delete_failed",
                files=len(file_refs),
                error=str(exc),
            )

    deleted_jobs = _delete_jobs(db, [job.id for job in jobs], "clear_pending_jobs")
    logger.info(
        "import_queue_cleared",
        deleted_jobs=deleted_jobs,
        deleted_files=deleted_files,
        requested_files=len(file_refs),
    )
    return ClearResult(deleted_jobs=deleted_jobs, deleted_files=deleted_files)


def clear_queue_only(db: Session) -> ClearResult:
    """Delete pending/processing job rows without touching object storage."""
    jobs = _select_active_jobs(db, "clear_queue_only")
    if not jobs:
        return ClearResult(deleted_jobs=0)

    deleted_jobs = _delete_jobs(db, [job.id for job in jobs], "clear_queue_only")
    logger.info("import_queue_rows_cleared", deleted_jobs=deleted_jobs)
    return ClearResult(deleted_jobs=deleted_jobs)


def claim_next_pending_job(db: Session) -> ImportJob | None:
    """Move the oldest pending job to processing and return it."""
    try:
        job = db.scalar(
            select(ImportJob)
            .where(ImportJob.status == ImportJobStatus.PENDING)
            .order_by(ImportJob.created_at.asc(), ImportJob.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        if job is None:
            db.rollback()
            return None
        transition_job(job, ImportJobStatus.PROCESSING)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error("claim_next_pending_job", exc) from exc
    return job


def finish_job(
    db: Session,
    job_id: uuid.UUID,
    target: ImportJobStatus,
    *,
    error_message: str | None = None,
    total_records: int | None = None,
) -> bool:
    """Stage processing -> completed/failed without committing.

    The update only applies while the job is still processing, so a cancel
    or clear that landed first is never overwritten. A job already loaded in
    the session is expired so it reloads the new values. Returns whether the row
    was updated; the caller commits or rolls back.
    """
    if target not in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED):
        raise ConflictError(
            ErrorCode.INVALID_TRANSITION.value,
            f"worker cannot move a job to {target.value}",
        )

    values: dict[str, Any] = {"status": target, "updated_at": utcnow()}
    if error_message is not None:
        values["error_message"] = error_message
    if total_records is not None:
        values["total_records"] = total_records

    result = db.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status == ImportJobStatus.PROCESSING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    loaded = db.identity_map.get(db.identity_key(ImportJob, job_id))
    if loaded is not None:
        db.expire(loaded)
    return result.rowcount == 1
