"""Embedding capabilities and float32 vector packing."""

from __future__ import annotations

import hashlib
import json
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .llm_client import LLMResponseFormatError
from .responses import http_post_json

__all__ = [
    "EmbeddingClient",
    "HashEmbeddingClient",
    "OpenAIEmbeddingClient",
    "pack_vector",
    "unpack_vector",
]

_KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def pack_vector(vector: Sequence[float]) -> bytes:
    """Serialise ``vector`` as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def unpack_vector(blob: bytes) -> np.ndarray:
    """Decode a float32 blob produced by :func:`pack_vector`."""
    return np.frombuffer(blob, dtype="<f4")


class EmbeddingClient:
    """Embedding capability: fixed dimensionality and text to vector."""

    def dimension(self) -> int:
        raise NotImplementedError

    def embed(self, text: str) -> List[float]:
        raise NotImplementedError


class HashEmbeddingClient(EmbeddingClient):
    """Deterministic offline encoder based on hashed tokens."""

    def __init__(self, dimension: int = 32) -> None:
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive.")
        self._dimension = dimension

    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        if not text.strip():
            return [0.0] * self._dimension

        accumulator = np.zeros(self._dimension, dtype=np.float64)
        for token in text.lower().split():
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            raw = np.frombuffer(digest, dtype=np.uint8)
            scores = (np.resize(raw, self._dimension) / 255.0) * 2.0 - 1.0
            accumulator += scores

        norm = float(np.linalg.norm(accumulator))
        if norm == 0:
            return [0.0] * self._dimension
        return (accumulator / norm).tolist()


class OpenAIEmbeddingClient(EmbeddingClient):
    """Adapter around an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        dimension: Optional[int] = None,
        transport: Optional[Callable[[Dict[str, Any]], str]] = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._url = base_url.rstrip("/") + "/embeddings"
        self._timeout = timeout
        self._transport = transport or self._http_transport
        self._dimension = dimension or _KNOWN_DIMENSIONS.get(model)

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension check"))
        return self._dimension

    def embed(self, text: str) -> List[float]:
        payload: Dict[str, Any] = {"model": self._model, "input": text}
        raw = self._transport(payload)
        try:
            data = json.loads(raw)
            vector = data["data"][0]["embedding"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as error:
            raise LLMResponseFormatError("Embedding response did not contain a vector.") from error
        if not isinstance(vector, list) or not vector:
            raise LLMResponseFormatError("Embedding response contained an empty vector.")
        return [float(component) for component in vector]

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        return http_post_json(self._url, payload, api_key=self._api_key, timeout=self._timeout)
