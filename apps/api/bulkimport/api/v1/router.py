from fastapi import APIRouter

from bulkimport.api.v1.ask import router as ask_router
from bulkimport.api.v1.imports import router as imports_router

router = APIRouter()
router.include_router(imports_router)
router.include_router(ask_router)
