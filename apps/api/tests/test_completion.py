from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from bulkimport.completion.factory import create_completion_backend
from bulkimport.completion.openai_backend import OpenAICompletionBackend
from bulkimport.services.exceptions import DependencyError


class _FakeResponses:
    def __init__(self, output_text: str | None = None, error: Exception | None = None) -> None:
        self.output_text = output_text
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output_text=self.output_text)


def _backend(responses: _FakeResponses) -> OpenAICompletionBackend:
    return OpenAICompletionBackend(None, "gpt-4o-mini", client=SimpleNamespace(responses=responses))


def test_complete_returns_stripped_text():
    responses = _FakeResponses(output_text="  Torque is rotational force.\n")

    assert _backend(responses).complete("What is torque?") == "Torque is rotational force."
    assert responses.calls == [{"model": "gpt-4o-mini", "input": "What is torque?"}]


def test_backend_errors_become_dependency_errors():
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    responses = _FakeResponses(error=APIConnectionError(request=request))

    with pytest.raises(DependencyError) as exc_info:
        _backend(responses).complete("What is torque?")
    assert exc_info.value.code == "COMPLETION_BACKEND_FAILED"


def test_missing_api_key_is_reported():
    backend = OpenAICompletionBackend(None, "gpt-4o-mini")

    with pytest.raises(DependencyError):
        backend.complete("hello")


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        create_completion_backend("llama")
