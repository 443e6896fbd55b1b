"""YAML configuration loading with defaults for every agent component."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import ConfigurationError

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "configure_logging",
    "load_config",
    "merge_config",
    "section",
]

DEFAULT_CONFIG_NAME = "agent.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "agent": {
        "max_iterations": 5,
        "abort_after": 3,
        "signature_length": 200,
        "conversation_capacity": 32768,
        "extraction_history_limit": 6000,
        "tool_name_capacity": 255,
    },
    "budget": {
        "min_context": 4096,
        "catalog_multiplier": 2,
        "prompt_overhead": 2000,
        "safety_margin": 1024,
        "min_available": 8192,
        "min_per_tool": 4096,
        "max_per_tool": 50000,
    },
    "errors": {
        "markers": ['"isError":true', "404 Not Found", "failed to"],
        "free_form_markers": ['"error"'],
    },
    "models": {
        "chat": "gpt-5-mini",
        "embedding": "text-embedding-3-small",
        "embedding_dimension": None,
        "base_url": "https://api.openai.com/v1",
        "api_key": None,
        "timeout": 60,
        "max_attempts": 3,
        "retry_delay": 0.5,
        "default_context_size": 4096,
    },
    "paths": {
        "data": "data",
        "db_path": "data/agent.sqlite",
        "logs": "data/logs",
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        "run_logs": False,
    },
}


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` onto a deep copy of ``base``."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Load YAML configuration from disk and merge it over the defaults."""
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping at the top level.")

    return merge_config(DEFAULT_CONFIG_TEMPLATE, data)


def section(config: Mapping[str, Any] | None, name: str) -> Dict[str, Any]:
    """Return one config section with defaults filled in for missing keys."""
    defaults = DEFAULT_CONFIG_TEMPLATE.get(name) or {}
    provided = (config or {}).get(name) or {}
    if not isinstance(provided, Mapping):
        raise ConfigurationError(f"Config section '{name}' must be a mapping.")
    return merge_config(defaults, provided)


def configure_logging(config: Mapping[str, Any] | None = None) -> None:
    """Apply the ``logging`` section to the package logger."""
    settings = section(config, "logging")
    level_name = str(settings.get("level") or "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown logging level: {level_name}")

    logger = logging.getLogger("sqlite_agent")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(settings.get("format")))
        logger.addHandler(handler)
