from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulkimport.models import ImportJobStatus, KnowledgeEntry
from bulkimport.services.lifecycle import claim_next_pending_job, finish_job
from bulkimport.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProcessOutcome:
    job_id: uuid.UUID
    status: ImportJobStatus
    processed: int
    error: str | None = None


def parse_entries(raw: bytes) -> list[str]:
    text = raw.decode("utf-8", errors="replace")
    return [line.strip() for line in text.splitlines() if line.strip()]


def _read_file(storage: StorageAdapter, file_ref: str) -> bytes:
    if not file_ref or "://" in file_ref:
        raise ValueError(f"invalid file path in job: {file_ref}")
    fileobj = storage.open(file_ref)
    try:
        return fileobj.read()
    finally:
        fileobj.close()


def _fail(db: Session, job_id: uuid.UUID, message: str) -> ProcessOutcome:
    db.rollback()
    updated = finish_job(db, job_id, ImportJobStatus.FAILED, error_message=message)
    db.commit()
    if updated:
        logger.error("import_job_failed", job_id=str(job_id), error=message)
    else:
        logger.info("import_job_fail_skipped", job_id=str(job_id), error=message)
    return ProcessOutcome(job_id=job_id, status=ImportJobStatus.FAILED, processed=0, error=message)


def process_next_pending_job(db: Session, storage: StorageAdapter) -> ProcessOutcome | None:
    """Claim the oldest pending job and turn its lines into knowledge entries.

    Entries and the completed status are written in one transaction that
    only commits if the job is still processing; a job cancelled or cleared
    mid-run leaves nothing behind.
    """
    job = claim_next_pending_job(db)
    if job is None:
        return None

    # The row may be deleted by a concurrent clear; keep plain values.
    job_id, file_ref = job.id, job.file_ref
    logger.info("import_job_started", job_id=str(job_id), filename=job.filename)

    try:
        entries = parse_entries(_read_file(storage, file_ref))
    except Exception as exc:
        return _fail(db, job_id, f"Failed to read file: {exc}")

    try:
        db.add_all([KnowledgeEntry(question=q, import_job_id=job_id) for q in entries])
        db.flush()
        completed = finish_job(db, job_id, ImportJobStatus.COMPLETED, total_records=len(entries))
        if not completed:
            db.rollback()
            logger.info("import_job_superseded", job_id=str(job_id))
            return ProcessOutcome(
                job_id=job_id,
                status=ImportJobStatus.CANCELLED,
                processed=0,
                error="job left processing before completion",
            )
        db.commit()
    except SQLAlchemyError as exc:
        return _fail(db, job_id, f"Failed to store entries: {exc.__class__.__name__}")

    logger.info("import_job_completed", job_id=str(job_id), processed=len(entries))
    return ProcessOutcome(job_id=job_id, status=ImportJobStatus.COMPLETED, processed=len(entries))
