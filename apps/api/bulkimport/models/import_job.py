from __future__ import annotations

from enum import Enum

import sqlalchemy as sa
from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bulkimport.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ImportJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


MAX_FILENAME_LENGTH = 255

ACTIVE_STATUSES = (ImportJobStatus.PENDING, ImportJobStatus.PROCESSING)
TERMINAL_STATUSES = (
    ImportJobStatus.COMPLETED,
    ImportJobStatus.FAILED,
    ImportJobStatus.CANCELLED,
)


class ImportJob(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "import_jobs"
    __table_args__ = (sa.Index("ix_import_jobs_status_created_at", "status", "created_at"),)

    filename: Mapped[str] = mapped_column(String(MAX_FILENAME_LENGTH), nullable=False)
    # Storage key, never a full external URL
    file_ref: Mapped[str] = mapped_column(String(1024), nullable=False)

    status: Mapped[ImportJobStatus] = mapped_column(
        sa.Enum(
            ImportJobStatus,
            name="import_job_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ImportJobStatus.PENDING,
        server_default=ImportJobStatus.PENDING.value,
    )

    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
