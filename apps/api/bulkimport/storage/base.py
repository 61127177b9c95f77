from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import BinaryIO


class StorageAdapter(ABC):
    @abstractmethod
    def put_file(self, key: str, fileobj: BinaryIO, content_type: str | None = None) -> str:
        """Store content from file-like object under key and return a URI."""

    @abstractmethod
    def open(self, key: str) -> BinaryIO:
        """Open key for reading in binary mode."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete key if it exists."""

    def delete_many(self, keys: Iterable[str]) -> int:
        """Delete every key; return how many were requested.

        Backends with a native batch delete override this.
        """
        count = 0
        for key in keys:
            self.delete(key)
            count += 1
        return count

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return whether key exists."""

    @abstractmethod
    def resolve_uri(self, key: str) -> str:
        """Return canonical storage URI for a key."""

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Return the publicly resolvable URL for a key."""
