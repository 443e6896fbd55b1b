from __future__ import annotations

import logging
from pathlib import Path

import pytest

from sqlite_agent.config import DEFAULT_CONFIG_TEMPLATE, configure_logging, load_config, merge_config, section
from sqlite_agent.errors import ConfigurationError


def test_load_config_without_path_returns_defaults() -> None:
    config = load_config()
    assert config == DEFAULT_CONFIG_TEMPLATE
    config["agent"]["max_iterations"] = 99
    assert DEFAULT_CONFIG_TEMPLATE["agent"]["max_iterations"] == 5


def test_yaml_overrides_keep_other_defaults(tmp_path: Path) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text("agent:\n  abort_after: 5\nmodels:\n  chat: custom-model\n", encoding="utf-8")
    config = load_config(path)
    assert config["agent"]["abort_after"] == 5
    assert config["agent"]["max_iterations"] == 5
    assert config["models"]["chat"] == "custom-model"
    assert config["budget"]["max_per_tool"] == 50000


@pytest.mark.parametrize("content", ["- just\n- a list\n", "agent: [unclosed\n"])
def test_invalid_yaml_is_rejected(tmp_path: Path, content: str) -> None:
    path = tmp_path / "agent.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "absent.yaml")


def test_section_fills_missing_keys() -> None:
    budget = section({"budget": {"min_context": 1}}, "budget")
    assert budget["min_context"] == 1
    assert budget["safety_margin"] == 1024
    assert section(None, "agent")["abort_after"] == 3


def test_merge_config_is_recursive() -> None:
    merged = merge_config({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
    assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


def test_configure_logging_sets_level() -> None:
    configure_logging({"logging": {"level": "debug"}})
    assert logging.getLogger("sqlite_agent").level == logging.DEBUG
    with pytest.raises(ConfigurationError):
        configure_logging({"logging": {"level": "chatty"}})


def test_agent_version_matches_package() -> None:
    import sqlite_agent

    assert sqlite_agent.agent_version() == sqlite_agent.__version__
