"""Tool catalog adapters and run logging helpers."""

from .catalog import CATALOG_HEADER, ToolCatalog, ToolRegistry, ToolSpec, error_payload
from .run_log import RunLog, RunLogEntry, load_run_log

__all__ = [
    "CATALOG_HEADER",
    "RunLog",
    "RunLogEntry",
    "ToolCatalog",
    "ToolRegistry",
    "ToolSpec",
    "error_payload",
    "load_run_log",
]
