"""Bounded transcript of tool activity gathered during one run."""

from __future__ import annotations

import logging

__all__ = ["ConversationState", "TRUNCATION_MARKER"]

LOGGER = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[conversation truncated]\n"


class ConversationState:
    """Append-only text accumulator that never grows past ``capacity``.

    The write that overflows keeps what fits and ends the buffer with
    ``TRUNCATION_MARKER``; later writes are dropped.
    """

    def __init__(self, capacity: int = 32768) -> None:
        if capacity <= len(TRUNCATION_MARKER):
            raise ValueError(f"Conversation capacity must exceed {len(TRUNCATION_MARKER)} characters.")
        self._capacity = capacity
        self._parts: list[str] = []
        self._length = 0
        self._truncated = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def truncated(self) -> bool:
        return self._truncated

    def __len__(self) -> int:
        return self._length

    def __str__(self) -> str:
        return self.text()

    def text(self) -> str:
        return "".join(self._parts)

    def head(self, limit: int) -> str:
        """First ``limit`` characters of the transcript."""
        return self.text()[: max(limit, 0)]

    def append(self, text: str) -> bool:
        """Append ``text``; returns False when any of it was dropped."""
        if self._truncated:
            LOGGER.debug("Conversation full; dropped %d chars", len(text))
            return False
        if self._length + len(text) <= self._capacity:
            self._parts.append(text)
            self._length += len(text)
            return True

        combined = self.text() + text
        kept = combined[: self._capacity - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
        self._parts = [kept]
        self._length = len(kept)
        self._truncated = True
        LOGGER.warning("Conversation reached its %d char capacity; tail dropped", self._capacity)
        return False

    def append_line(self, text: str) -> bool:
        return self.append(text if text.endswith("\n") else text + "\n")
