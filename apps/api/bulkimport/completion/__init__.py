from bulkimport.completion.base import CompletionBackend
from bulkimport.completion.factory import create_completion_backend, get_completion_backend
from bulkimport.completion.openai_backend import OpenAICompletionBackend

__all__ = [
    "CompletionBackend",
    "OpenAICompletionBackend",
    "create_completion_backend",
    "get_completion_backend",
]
