from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from bulkimport.core.config import settings
from bulkimport.storage.base import StorageAdapter
from bulkimport.storage.local import LocalStorageAdapter
from bulkimport.storage.s3 import S3StorageAdapter


def create_storage(
    backend: str | None = None,
    root: str | Path | None = None,
) -> StorageAdapter:
    selected_backend = (backend or settings.storage_backend).strip().lower()
    if selected_backend == "local":
        storage_root = Path(root or settings.storage_root)
        return LocalStorageAdapter(storage_root, public_base_url=settings.storage_public_base_url)
    if selected_backend == "s3":
        return S3StorageAdapter(
            settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            public_base_url=settings.storage_public_base_url,
        )
    raise ValueError(f"unsupported storage backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_storage() -> StorageAdapter:
    return create_storage()
