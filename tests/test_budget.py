from __future__ import annotations

import pytest

from sqlite_agent.budget import ContextBudgetPlanner
from sqlite_agent.config import DEFAULT_CONFIG_TEMPLATE, merge_config


def test_base_context_size_has_a_floor() -> None:
    planner = ContextBudgetPlanner()
    assert planner.base_context_size(0) == 4096
    assert planner.base_context_size(100) == 4096


def test_base_context_size_doubles_large_catalogs() -> None:
    assert ContextBudgetPlanner().base_context_size(10_000) == 20_000


def test_base_context_size_never_shrinks_active_context() -> None:
    assert ContextBudgetPlanner().base_context_size(1_000, existing_active_size=65_536) == 65_536


@pytest.mark.parametrize(
    ("ctx_size", "catalog", "prompt", "iterations"),
    [
        (0, 0, 0, 1),
        (4096, 50_000, 50_000, 5),
        (1_000_000, 0, 0, 1),
        (1_000_000, 10, 10, 100),
        (20_000, 4_000, 3_000, 2),
    ],
)
def test_truncate_length_is_clamped(ctx_size: int, catalog: int, prompt: int, iterations: int) -> None:
    length = ContextBudgetPlanner().truncate_length(ctx_size, catalog, prompt, iterations)
    assert 4096 <= length <= 50_000


def test_truncate_length_splits_across_expected_tool_calls() -> None:
    planner = ContextBudgetPlanner()
    # 100000 - 1000 - 1000 - 2000 - 1024 = 94976, spread over ceil(5 / 2) = 3 calls.
    assert planner.truncate_length(100_000, 1_000, 1_000, 5) == 94_976 // 3


def test_truncate_length_uses_available_floor() -> None:
    # Nothing is left after overheads, so the 8192 floor is split over 1 call.
    assert ContextBudgetPlanner().truncate_length(1_000, 5_000, 5_000, 1) == 8192


def test_planner_reads_budget_section() -> None:
    config = merge_config(DEFAULT_CONFIG_TEMPLATE, {"budget": {"min_context": 8192, "max_per_tool": 9000}})
    planner = ContextBudgetPlanner.from_config(config)
    assert planner.base_context_size(0) == 8192
    assert planner.truncate_length(1_000_000, 0, 0, 1) == 9000
