from bulkimport.models.base import Base
from bulkimport.models.import_job import ImportJob, ImportJobStatus
from bulkimport.models.knowledge_entry import KnowledgeEntry

__all__ = ["Base", "ImportJob", "ImportJobStatus", "KnowledgeEntry"]
