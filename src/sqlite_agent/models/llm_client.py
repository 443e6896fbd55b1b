"""Stateful chat client base class shared by all language-model integrations."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

__all__ = [
    "ChatClient",
    "ChatMessage",
    "ChatRequest",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "normalise_model_text",
    "strip_code_fence",
]

LOGGER = logging.getLogger(__name__)


class LLMClientError(RuntimeError):
    """Base error raised for chat client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the transport payload carries no usable text."""


class LLMRetryError(LLMClientError):
    """Raised after exhausting retries due to repeated transport failures."""


@dataclass(slots=True)
class ChatMessage:
    """Single turn retained inside a chat context."""

    role: str
    content: str


@dataclass(slots=True)
class ChatRequest:
    """Transport-neutral request rendered from the current chat history."""

    model: str
    messages: List[ChatMessage]

    def to_payload(self) -> Dict[str, Any]:
        """Render a transport-ready payload for the Responses API."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "input": [
                {
                    "role": message.role,
                    "content": [
                        {
                            "type": "input_text" if message.role != "assistant" else "output_text",
                            "text": message.content,
                        }
                    ],
                }
                for message in self.messages
            ],
        }
        return payload


class ChatClient:
    """Chat capability that keeps conversation history within one created context.

    ``create_context`` discards the history and allocates a new working budget.
    ``respond`` appends the prompt, evicts the oldest turns when the history no
    longer fits the budget, and returns the model's reply (``None`` when the
    model produced no text). Subclasses implement ``_raw_invoke``.
    """

    def __init__(
        self,
        model: str,
        *,
        default_context_size: int = 4096,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        if default_context_size <= 0:
            raise ValueError("Default context size must be positive.")
        self._model = model
        self._default_context_size = default_context_size
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._context_size = 0
        self._history: List[ChatMessage] = []

    @property
    def model(self) -> str:
        """Return the model name configured for this client."""
        return self._model

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    def create_context(self, size: Optional[int] = None) -> None:
        """Start a fresh context with ``size`` characters of working budget."""
        resolved = size if size and size > 0 else self._default_context_size
        self._context_size = resolved
        self._history = []
        LOGGER.debug("Created chat context with size: %d", resolved)

    def context_size(self) -> int:
        """Return the active context budget, or 0 when no context exists."""
        return self._context_size

    def respond(self, prompt: str) -> Optional[str]:
        """Send ``prompt`` within the active context and return the reply."""
        if self._context_size <= 0:
            self.create_context()

        self._history.append(ChatMessage(role="user", content=prompt))
        self._fit_history()
        request = ChatRequest(model=self._model, messages=list(self._history))

        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                raw = self._raw_invoke(request.to_payload())
            except LLMTransportError as error:
                last_error = error
                LOGGER.warning("Chat attempt %d/%d failed: %s", attempt, self._max_attempts, error)
                if attempt < self._max_attempts:
                    time.sleep(self._retry_delay)
                continue
            except LLMClientError:
                self._history.pop()
                raise
            if raw is None or not raw.strip():
                self._history.pop()
                return None
            self._history.append(ChatMessage(role="assistant", content=raw))
            self._fit_history()
            return raw

        self._history.pop()
        raise LLMRetryError(
            f"Model {self._model} did not respond after {self._max_attempts} attempt(s)"
        ) from last_error

    def _raw_invoke(self, payload: Dict[str, Any]) -> Optional[str]:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    def _fit_history(self) -> None:
        # The newest turn always survives, even when it alone exceeds the budget.
        total = sum(len(message.content) for message in self._history)
        while len(self._history) > 1 and total > self._context_size:
            evicted = self._history.pop(0)
            total -= len(evicted.content)
            LOGGER.debug("Evicted %s turn (%d chars) from chat context", evicted.role, len(evicted.content))


def strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    stripped = payload.strip()
    if not stripped.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", stripped[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = stripped.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = stripped.find("\n", len(fence_header_match.group(0)))
    if content_start == -1 or content_start > fence_end:
        return payload
    return stripped[content_start + 1 : fence_end].strip()


def normalise_model_text(payload: str) -> str:
    """Normalise common non-JSON characters emitted by models."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0xFF07: "'",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))
