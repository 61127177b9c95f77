from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile

from bulkimport.api.deps import AdminKey, DBSession, Storage
from bulkimport.api.errors import http_error_from_service
from bulkimport.api.v1.schemas.imports import (
    CancelJobOut,
    ClearPendingOut,
    ClearQueueOut,
    FileResultOut,
    ImportJobListOut,
    ImportJobOut,
    SubmitImportOut,
    WorkerTriggerOut,
)
from bulkimport.core.config import settings
from bulkimport.services import (
    UploadedFile,
    cancel_job,
    clear_pending_jobs,
    clear_queue_only,
    list_jobs,
    submit_import_batch,
)
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import ServiceError
from bulkimport.services.ingestion import RESULT_PENDING
from bulkimport.worker.celery_app import celery_app

router = APIRouter(prefix="/imports", tags=["imports"])


_CHUNK_SIZE = 1024 * 1024


def _read_upload(upload: UploadFile, max_bytes: int) -> UploadedFile:
    # Stop one byte past the cap; ingestion reports the file as too large.
    buffered = bytearray()
    try:
        while len(buffered) <= max_bytes:
            chunk = upload.file.read(min(_CHUNK_SIZE, max_bytes + 1 - len(buffered)))
            if not chunk:
                break
            buffered.extend(chunk)
    finally:
        upload.file.close()
    return UploadedFile(
        filename=upload.filename or "",
        content=bytes(buffered),
        content_type=upload.content_type,
    )


@router.post("", response_model=SubmitImportOut, status_code=202)
def submit_imports(
    db: DBSession,
    storage: Storage,
    files: list[UploadFile] = File(default=[]),
):
    uploads = [_read_upload(f, settings.import_max_upload_bytes) for f in files]
    try:
        results = submit_import_batch(db, storage, uploads)
    except ServiceError as err:
        raise http_error_from_service(err) from err

    accepted = sum(1 for r in results if r.status == RESULT_PENDING)
    return SubmitImportOut(
        results=[FileResultOut.from_result(r) for r in results],
        accepted=accepted,
        rejected=len(results) - accepted,
    )


@router.get("", response_model=ImportJobListOut)
def get_imports(db: DBSession):
    try:
        jobs = list_jobs(db)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return ImportJobListOut(items=[ImportJobOut.from_orm_job(j) for j in jobs], total=len(jobs))


@router.post("/clear-pending", response_model=ClearPendingOut, dependencies=[AdminKey])
def clear_pending(db: DBSession, storage: Storage):
    try:
        result = clear_pending_jobs(db, storage)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return ClearPendingOut(deleted_jobs=result.deleted_jobs, deleted_files=result.deleted_files)


@router.post("/clear-queue", response_model=ClearQueueOut, dependencies=[AdminKey])
def clear_queue(db: DBSession):
    try:
        result = clear_queue_only(db)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return ClearQueueOut(deleted_jobs=result.deleted_jobs)


@router.post("/worker", response_model=WorkerTriggerOut, status_code=202, dependencies=[AdminKey])
def trigger_worker():
    try:
        async_result = celery_app.send_task("drain_import_queue")
    except Exception as exc:
        raise HTTPException(
            status_code=503,
            detail={"code": ErrorCode.QUEUE_ERROR.value, "message": "failed to enqueue import worker"},
        ) from exc
    return WorkerTriggerOut(status="queued", task_id=async_result.id)


@router.post("/{job_id}/cancel", response_model=CancelJobOut, dependencies=[AdminKey])
def cancel_import(job_id: str, db: DBSession):
    try:
        result = cancel_job(db, job_id)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return CancelJobOut(
        deleted_count=result.deleted_count,
        job_id=result.job_id,
        filename=result.filename,
    )
