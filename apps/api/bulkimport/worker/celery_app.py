from celery import Celery

from bulkimport.core.config import settings

celery_app = Celery(
    "bulkimport",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["bulkimport.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
