from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulkimport.models import ImportJob
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import DependencyError

logger = structlog.get_logger(__name__)


def list_jobs(db: Session) -> list[ImportJob]:
    """Return every import job, oldest first."""
    try:
        return list(
            db.scalars(
                select(ImportJob).order_by(ImportJob.created_at.asc(), ImportJob.id.asc())
            ).all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("job_store_error", operation="list_jobs", error=str(exc))
        raise DependencyError(
            ErrorCode.JOB_STORE_UNAVAILABLE.value, "job store unavailable"
        ) from exc
