from __future__ import annotations

from fastapi import APIRouter, HTTPException

from bulkimport.api.deps import Completion
from bulkimport.api.errors import http_error_from_service
from bulkimport.api.v1.schemas.ask import AskIn, AskOut
from bulkimport.services.exceptions import ServiceError

router = APIRouter(prefix="/ask", tags=["ask"])


@router.post("", response_model=AskOut)
def ask(payload: AskIn, backend: Completion):
    question = payload.question.strip()
    if not question:
        raise HTTPException(
            status_code=422,
            detail={"code": "EMPTY_QUESTION", "message": "question must not be empty"},
        )
    try:
        answer = backend.complete(question)
    except ServiceError as err:
        raise http_error_from_service(err) from err
    return AskOut(answer=answer)
