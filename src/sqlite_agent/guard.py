"""Detect tool calls that keep failing the same way."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

from .config import section

__all__ = ["ErrorLoopGuard", "ErrorPredicate", "ToolResult", "substring_marker"]

LOGGER = logging.getLogger(__name__)

ErrorPredicate = Callable[[str], bool]


def substring_marker(marker: str) -> ErrorPredicate:
    """Predicate matching results that contain ``marker`` verbatim."""

    def _matches(text: str) -> bool:
        return marker in text

    _matches.__name__ = f"contains({marker!r})"
    return _matches


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Raw tool output plus the error flag derived from it."""

    text: str
    is_error: bool


class ErrorLoopGuard:
    """Counts consecutive identical tool failures.

    The signature of a failure is a fixed-length prefix of its result text. A
    successful result resets the count; a different failure restarts it at 1.
    """

    def __init__(
        self,
        markers: Iterable[str | ErrorPredicate] = (),
        *,
        threshold: int = 3,
        signature_length: int = 200,
    ) -> None:
        if threshold < 1:
            raise ValueError("Abort threshold must be at least 1.")
        self._predicates: Sequence[ErrorPredicate] = tuple(
            substring_marker(marker) if isinstance(marker, str) else marker for marker in markers
        )
        self._threshold = threshold
        self._signature_length = signature_length
        self.last_signature = ""
        self.count = 0

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "ErrorLoopGuard":
        errors_cfg = section(config, "errors")
        agent_cfg = section(config, "agent")
        return cls(
            errors_cfg.get("markers") or (),
            threshold=int(agent_cfg["abort_after"]),
            signature_length=int(agent_cfg["signature_length"]),
        )

    def classify(self, result_text: str) -> bool:
        return any(predicate(result_text) for predicate in self._predicates)

    def signature(self, result_text: str) -> str:
        return result_text[: self._signature_length]

    def update(self, is_error: bool, signature: str = "") -> None:
        if not is_error:
            self.count = 0
            self.last_signature = ""
            return
        if self.count and signature == self.last_signature:
            self.count += 1
            LOGGER.warning("Same tool error repeated %d times", self.count)
        else:
            self.last_signature = signature
            self.count = 1

    def should_abort(self) -> bool:
        return self.count >= self._threshold

    def observe(self, result_text: str) -> ToolResult:
        """Classify ``result_text`` and fold it into the running count."""
        is_error = self.classify(result_text)
        self.update(is_error, self.signature(result_text) if is_error else "")
        return ToolResult(text=result_text, is_error=is_error)

    def reset(self) -> None:
        self.update(False)
