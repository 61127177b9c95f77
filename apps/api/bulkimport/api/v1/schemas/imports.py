from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from bulkimport.models import ImportJob
from bulkimport.models.import_job import ImportJobStatus
from bulkimport.services.ingestion import FileResult


class FileResultOut(BaseModel):
    filename: str
    status: str
    job_id: UUID | None = None
    code: str | None = None
    detail: str | None = None

    @classmethod
    def from_result(cls, result: FileResult) -> "FileResultOut":
        return cls(
            filename=result.filename,
            status=result.status,
            job_id=result.job_id,
            code=result.code,
            detail=result.detail,
        )


class SubmitImportOut(BaseModel):
    results: list[FileResultOut]
    accepted: int
    rejected: int


class ImportJobOut(BaseModel):
    id: UUID
    filename: str
    file_ref: str
    status: ImportJobStatus
    total_records: int | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_orm_job(cls, job: ImportJob) -> "ImportJobOut":
        return cls.model_validate(job)


class ImportJobListOut(BaseModel):
    items: list[ImportJobOut]
    total: int


class CancelJobOut(BaseModel):
    deleted_count: int
    job_id: UUID
    filename: str


class ClearPendingOut(BaseModel):
    deleted_jobs: int
    deleted_files: int


class ClearQueueOut(BaseModel):
    deleted_jobs: int


class WorkerTriggerOut(BaseModel):
    status: str
    task_id: str
