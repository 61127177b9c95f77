from __future__ import annotations

import structlog
from openai import OpenAI, OpenAIError

from bulkimport.completion.base import CompletionBackend
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import DependencyError

logger = structlog.get_logger(__name__)


class OpenAICompletionBackend(CompletionBackend):
    def __init__(self, api_key: str | None, model: str, client: OpenAI | None = None) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise DependencyError(
                    ErrorCode.COMPLETION_BACKEND_FAILED.value,
                    "OPENAI_API_KEY must be set for the openai completion backend",
                )
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def complete(self, prompt: str) -> str:
        client = self._get_client()
        try:
            response = client.responses.create(model=self._model, input=prompt)
        except OpenAIError as exc:
            logger.error("completion_request_failed", model=self._model, error=str(exc))
            raise DependencyError(
                ErrorCode.COMPLETION_BACKEND_FAILED.value, "content generation failed"
            ) from exc

        text = (response.output_text or "").strip()
        logger.info("completion_request_succeeded", model=self._model, chars=len(text))
        return text
