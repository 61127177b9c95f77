# create_tables.py
# Run once against DATABASE_URL to create any missing tables.

from sqlalchemy import inspect

from bulkimport.db import engine
from bulkimport.models import Base

Base.metadata.create_all(engine)

tables = inspect(engine).get_table_names()
print("Tables in DB:", tables)
for expected in ("import_jobs", "knowledge_entries"):
    if expected not in tables:
        raise SystemExit(f"'{expected}' not found; check that its model is imported in bulkimport.models")
