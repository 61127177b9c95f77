from bulkimport.api.v1.schemas.ask import AskIn, AskOut
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

__all__ = [
    "AskIn",
    "AskOut",
    "FileResultOut",
    "SubmitImportOut",
    "ImportJobOut",
    "ImportJobListOut",
    "CancelJobOut",
    "ClearPendingOut",
    "ClearQueueOut",
    "WorkerTriggerOut",
]
