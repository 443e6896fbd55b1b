"""Tool catalog interface and an in-process registry implementing it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from ..errors import ToolInvocationError

__all__ = ["CATALOG_HEADER", "ToolCatalog", "ToolRegistry", "ToolSpec", "error_payload"]

LOGGER = logging.getLogger(__name__)

CATALOG_HEADER = "Available tools (JSON):\n"

ToolHandler = Callable[..., Any]


class ToolCatalog(Protocol):
    """External collaborator that lists and executes tools."""

    def list_tools(self) -> str:
        """Serialized description of every callable tool."""
        ...

    def call_tool(self, name: str, args_json: str) -> str:
        """Execute ``name``; raise ``ToolInvocationError`` when unreachable."""
        ...


def error_payload(message: str) -> str:
    """Tool-level failure in the ``isError`` result shape."""
    return json.dumps(
        {"isError": True, "content": [{"type": "text", "text": message}]},
        separators=(",", ":"),
    )


@dataclass(slots=True)
class ToolSpec:
    """Metadata describing how to execute a single tool."""

    name: str
    handler: ToolHandler
    description: str = ""
    args_model: Optional[type[Any]] = None

    def descriptor(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "object", "properties": {}}
        if self.args_model is not None:
            schema = TypeAdapter(self.args_model).json_schema()
        return {"name": self.name, "description": self.description, "inputSchema": schema}


class ToolRegistry:
    """Dispatch table mapping tool names to Python callables.

    Handlers receive keyword arguments, or a single validated instance when an
    ``args_model`` is registered. Non-string return values are serialised as
    JSON. Handler exceptions become ``isError`` payloads, except
    ``ToolInvocationError`` which propagates as an unreachable backend.
    """

    def __init__(self, tools: Iterable[ToolSpec] = ()) -> None:
        self._tools: Dict[str, ToolSpec] = {}
        for spec in tools:
            self.add(spec)

    def add(self, spec: ToolSpec) -> ToolSpec:
        if not spec.name:
            raise ValueError("Tool name must be non-empty.")
        if spec.name in self._tools:
            raise ValueError(f"Tool '{spec.name}' is already registered.")
        self._tools[spec.name] = spec
        return spec

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        args_model: Optional[type[Any]] = None,
    ) -> ToolSpec:
        return self.add(ToolSpec(name=name, handler=handler, description=description, args_model=args_model))

    def tool(
        self,
        name: Optional[str] = None,
        *,
        description: Optional[str] = None,
        args_model: Optional[type[Any]] = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`register`."""

        def _decorator(handler: ToolHandler) -> ToolHandler:
            self.register(
                name or handler.__name__,
                handler,
                description=description if description is not None else (handler.__doc__ or "").strip(),
                args_model=args_model,
            )
            return handler

        return _decorator

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> str:
        descriptors = [spec.descriptor() for spec in self._tools.values()]
        return CATALOG_HEADER + json.dumps(descriptors, indent=2)

    def call_tool(self, name: str, args_json: str) -> str:
        spec = self._tools.get(name)
        if spec is None:
            return error_payload(f"Tool not found: {name}")

        try:
            args = json.loads(args_json or "{}")
        except json.JSONDecodeError as error:
            return error_payload(f"Invalid arguments for {name}: {error.msg}")
        if not isinstance(args, dict):
            return error_payload(f"Arguments for {name} must be a JSON object")

        try:
            if spec.args_model is not None:
                request = TypeAdapter(spec.args_model).validate_python(args)
                result = spec.handler(request)
            else:
                result = spec.handler(**args)
        except ToolInvocationError:
            raise
        except ValidationError as error:
            return error_payload(f"Arguments for {name} did not validate: {error.error_count()} error(s)")
        except Exception as error:
            LOGGER.warning("Tool %s raised %s", name, error)
            return error_payload(f"Tool {name} failed to execute: {error}")

        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)
