from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bulkimport.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class KnowledgeEntry(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A knowledge-base entry produced by processing an import job."""

    __tablename__ = "knowledge_entries"

    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)

    # NULL for entries created outside the import worker (or before attribution existed)
    import_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
