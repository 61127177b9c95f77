from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from bulkimport.completion.base import CompletionBackend
from bulkimport.completion.factory import get_completion_backend
from bulkimport.core.config import settings
from bulkimport.db import get_db
from bulkimport.storage.base import StorageAdapter
from bulkimport.storage.factory import get_storage

DBSession = Annotated[Session, Depends(get_db)]
Storage = Annotated[StorageAdapter, Depends(get_storage)]
Completion = Annotated[CompletionBackend, Depends(get_completion_backend)]


def require_admin_key(x_admin_key: Annotated[str | None, Header()] = None) -> None:
    expected = settings.admin_api_key
    if expected is None:
        return
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "missing or invalid admin key"},
        )


AdminKey = Depends(require_admin_key)
