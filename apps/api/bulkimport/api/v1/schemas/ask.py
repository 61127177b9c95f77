from __future__ import annotations

from pydantic import BaseModel, Field


class AskIn(BaseModel):
    question: str = Field(..., max_length=4000)


class AskOut(BaseModel):
    answer: str
