"""Convenience exports for chat and embedding client implementations."""

from .embeddings import EmbeddingClient, HashEmbeddingClient, OpenAIEmbeddingClient
from .factory import build_chat_client, build_embedding_client
from .llm_client import (
    ChatClient,
    LLMClientError,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
)
from .responses import ResponsesChatClient

__all__ = [
    "ChatClient",
    "EmbeddingClient",
    "HashEmbeddingClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "OpenAIEmbeddingClient",
    "ResponsesChatClient",
    "build_chat_client",
    "build_embedding_client",
]
