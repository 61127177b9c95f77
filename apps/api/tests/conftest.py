from __future__ import annotations

import os
import tempfile
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

_TMP_ROOT = Path(tempfile.mkdtemp(prefix="bulkimport-tests-"))

# Ensure storage + database point at throwaway locations before app import
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TMP_ROOT / 'test.db'}"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = str(_TMP_ROOT / "storage")
os.environ["ADMIN_API_KEY"] = ""
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from bulkimport.db import SessionLocal, engine  # noqa: E402
from bulkimport.main import app  # noqa: E402
from bulkimport.models import Base, ImportJob, ImportJobStatus, KnowledgeEntry  # noqa: E402
from bulkimport.storage.factory import get_storage  # noqa: E402

Base.metadata.create_all(engine)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage():
    return get_storage()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def make_job(db_session):
    def _make_job(
        filename: str = "questions.txt",
        status: ImportJobStatus = ImportJobStatus.PENDING,
        file_ref: str | None = None,
        **fields,
    ) -> ImportJob:
        job = ImportJob(
            filename=filename,
            file_ref=file_ref or f"bulk-import/{filename}",
            status=status,
            **fields,
        )
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _make_job


@pytest.fixture(autouse=True)
def clean_db():
    # Ensure a clean slate for each test
    db = SessionLocal()
    try:
        db.execute(delete(KnowledgeEntry))
        db.execute(delete(ImportJob))
        db.commit()
    finally:
        db.close()
    yield
