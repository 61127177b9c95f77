from __future__ import annotations

from abc import ABC, abstractmethod


class CompletionBackend(ABC):
    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Return the generated text for prompt."""
