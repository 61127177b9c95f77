from __future__ import annotations

from functools import lru_cache

from bulkimport.completion.base import CompletionBackend
from bulkimport.completion.openai_backend import OpenAICompletionBackend
from bulkimport.core.config import settings


def create_completion_backend(backend: str | None = None) -> CompletionBackend:
    selected_backend = (backend or settings.completion_backend).strip().lower()
    if selected_backend == "openai":
        return OpenAICompletionBackend(settings.openai_api_key, settings.openai_model)
    raise ValueError(f"unsupported completion backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_completion_backend() -> CompletionBackend:
    return create_completion_backend()
