from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from bulkimport.core.config import settings
from bulkimport.db import SessionLocal
from bulkimport.storage.factory import get_storage
from bulkimport.worker.celery_app import celery_app
from bulkimport.worker.processing import process_next_pending_job

logger = get_task_logger(__name__)


@celery_app.task(name="process_import_job")
def process_import_job() -> dict:
    db: Session = SessionLocal()
    try:
        outcome = process_next_pending_job(db, get_storage())
    finally:
        db.close()

    if outcome is None:
        logger.info("process_import_job no pending jobs")
        return {"status": "idle"}

    logger.info(
        "process_import_job finished job_id=%s status=%s processed=%s",
        outcome.job_id,
        outcome.status.value,
        outcome.processed,
    )
    return {
        "job_id": str(outcome.job_id),
        "status": outcome.status.value,
        "processed": outcome.processed,
    }


@celery_app.task(name="drain_import_queue")
def drain_import_queue(max_jobs: int | None = None) -> dict:
    limit = max_jobs or settings.import_worker_batch_size
    processed_jobs = 0
    db: Session = SessionLocal()
    try:
        while processed_jobs < limit:
            outcome = process_next_pending_job(db, get_storage())
            if outcome is None:
                break
            processed_jobs += 1
    finally:
        db.close()

    logger.info("drain_import_queue processed_jobs=%s", processed_jobs)
    return {"processed_jobs": processed_jobs}
