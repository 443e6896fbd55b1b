"""Construct chat and embedding clients from the ``models`` config section."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..config import section
from ..errors import ConfigurationError
from .embeddings import EmbeddingClient, HashEmbeddingClient, OpenAIEmbeddingClient
from .llm_client import ChatClient
from .responses import ResponsesChatClient, Transport

__all__ = ["build_chat_client", "build_embedding_client"]

_OFFLINE_NAMES = {"offline", "hash"}


def _is_offline(name: str) -> bool:
    key = name.lower()
    return key in _OFFLINE_NAMES or key.endswith("-offline")


def _client_kwargs(models_cfg: Mapping[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    timeout_value = models_cfg.get("timeout")
    if isinstance(timeout_value, (int, float)) and timeout_value > 0:
        kwargs["timeout"] = float(timeout_value)
    base_url_value = models_cfg.get("base_url")
    if isinstance(base_url_value, str) and base_url_value.strip():
        kwargs["base_url"] = base_url_value.strip()
    api_key_value = models_cfg.get("api_key")
    if isinstance(api_key_value, str) and api_key_value.strip():
        kwargs["api_key"] = api_key_value.strip()
    return kwargs


def build_chat_client(
    config: Mapping[str, Any] | None = None,
    *,
    transport: Optional[Transport] = None,
) -> ChatClient:
    """Return the configured Responses API chat client."""
    models_cfg = section(config, "models")
    model_name = str(models_cfg.get("chat") or "").strip()
    if not model_name or _is_offline(model_name):
        raise ConfigurationError(f"Chat model '{model_name}' has no remote endpoint configured.")

    kwargs = _client_kwargs(models_cfg)
    max_attempts_value = models_cfg.get("max_attempts")
    if isinstance(max_attempts_value, int) and max_attempts_value > 0:
        kwargs["max_attempts"] = max_attempts_value
    retry_delay_value = models_cfg.get("retry_delay")
    if isinstance(retry_delay_value, (int, float)) and retry_delay_value >= 0:
        kwargs["retry_delay"] = float(retry_delay_value)
    context_value = models_cfg.get("default_context_size")
    if isinstance(context_value, int) and context_value > 0:
        kwargs["default_context_size"] = context_value

    try:
        return ResponsesChatClient(model=model_name, transport=transport, **kwargs)
    except ValueError as error:
        raise ConfigurationError(f"Failed to initialise chat client: {error}") from error


def build_embedding_client(
    config: Mapping[str, Any] | None = None,
    *,
    transport: Optional[Transport] = None,
) -> EmbeddingClient:
    """Return the configured embedding client, hashing locally when offline."""
    models_cfg = section(config, "models")
    model_name = str(models_cfg.get("embedding") or "hash").strip()
    dimension_value = models_cfg.get("embedding_dimension")
    dimension = dimension_value if isinstance(dimension_value, int) and dimension_value > 0 else None

    if _is_offline(model_name):
        return HashEmbeddingClient(dimension or 32)

    try:
        return OpenAIEmbeddingClient(
            model=model_name,
            dimension=dimension,
            transport=transport,
            **_client_kwargs(models_cfg),
        )
    except ValueError as error:
        raise ConfigurationError(f"Failed to initialise embedding client: {error}") from error
