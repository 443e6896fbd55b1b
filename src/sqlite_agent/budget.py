"""Context-window arithmetic for chat sizing and tool-result truncation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .config import section

__all__ = ["ContextBudgetPlanner"]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ContextBudgetPlanner:
    """Sizes the chat context and the per-tool share of it.

    ``truncate_length`` reserves room for the catalog, the task prompt, the
    extraction template and a safety margin, then splits what is left across
    the tool calls expected in a run (every other iteration, rounded up).
    """

    min_context: int = 4096
    catalog_multiplier: int = 2
    prompt_overhead: int = 2000
    safety_margin: int = 1024
    min_available: int = 8192
    min_per_tool: int = 4096
    max_per_tool: int = 50000

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "ContextBudgetPlanner":
        settings = section(config, "budget")
        return cls(**{name: int(settings[name]) for name in cls.__dataclass_fields__ if name in settings})

    def base_context_size(self, catalog_bytes: int, existing_active_size: int = 0) -> int:
        """Context size for a run; never smaller than an already-active context."""
        candidate = max(self.min_context, self.catalog_multiplier * max(catalog_bytes, 0))
        size = max(candidate, existing_active_size or 0)
        LOGGER.debug(
            "Calculated context size: %d (catalog: %d bytes, existing: %d)",
            size,
            catalog_bytes,
            existing_active_size or 0,
        )
        return size

    def truncate_length(
        self,
        ctx_size: int,
        catalog_bytes: int,
        prompt_bytes: int,
        max_iterations: int,
    ) -> int:
        """Per-tool-result character budget applied to the conversation history."""
        available = ctx_size - catalog_bytes - prompt_bytes - self.prompt_overhead - self.safety_margin
        available = max(available, self.min_available)
        expected_calls = max(1, (max(max_iterations, 1) + 1) // 2)
        length = min(max(available // expected_calls, self.min_per_tool), self.max_per_tool)
        LOGGER.debug(
            "Dynamic truncation: ctx_size=%d, catalog=%d, prompt=%d, available=%d, truncate_at=%d",
            ctx_size,
            catalog_bytes,
            prompt_bytes,
            available,
            length,
        )
        return length
