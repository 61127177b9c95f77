from bulkimport.storage.base import StorageAdapter
from bulkimport.storage.factory import create_storage, get_storage
from bulkimport.storage.local import LocalStorageAdapter
from bulkimport.storage.s3 import S3StorageAdapter

__all__ = [
    "StorageAdapter",
    "LocalStorageAdapter",
    "S3StorageAdapter",
    "create_storage",
    "get_storage",
]
