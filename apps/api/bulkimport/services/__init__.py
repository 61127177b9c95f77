from bulkimport.services.admission import AdmissionController, RateLimitDecision, Tier
from bulkimport.services.ingestion import FileResult, UploadedFile, submit_import_batch
from bulkimport.services.lifecycle import (
    CancelResult,
    ClearResult,
    cancel_job,
    clear_pending_jobs,
    clear_queue_only,
)
from bulkimport.services.status import list_jobs

__all__ = [
    "AdmissionController",
    "RateLimitDecision",
    "Tier",
    "UploadedFile",
    "FileResult",
    "submit_import_batch",
    "CancelResult",
    "ClearResult",
    "cancel_job",
    "clear_pending_jobs",
    "clear_queue_only",
    "list_jobs",
]
