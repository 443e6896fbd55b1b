"""Extract tool invocations from semi-structured model output.

Two grammars are supported:

``ParseMode.FREE_FORM``
    ``TOOL_CALL: <name>`` followed by an optional ``ARGS: {...}`` line.

``ParseMode.JSON``
    A single object of the form ``{"tool": "<name>", "args": {...}}``.

Both share :func:`scan_balanced`, which counts braces without looking inside
string literals: an unbalanced brace inside a quoted argument value shifts the
match. That is a known gap, not something the scanner tries to repair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

__all__ = [
    "ARGS_MARKER",
    "EMPTY_ARGS",
    "MAX_TOOL_NAME_LENGTH",
    "ParseMode",
    "TOOL_CALL_MARKER",
    "ToolInvocation",
    "has_template_markers",
    "parse",
    "scan_balanced",
]

LOGGER = logging.getLogger(__name__)

TOOL_CALL_MARKER = "TOOL_CALL:"
ARGS_MARKER = "ARGS:"
JSON_TOOL_KEY = '"tool"'
JSON_ARGS_KEY = '"args"'
EMPTY_ARGS = "{}"
MAX_TOOL_NAME_LENGTH = 255


class ParseMode(str, Enum):
    """Grammar used to read a tool call from a response."""

    FREE_FORM = "free_form"
    JSON = "json"


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    """Tool name plus its arguments as JSON object text."""

    name: str
    args: str = EMPTY_ARGS


def scan_balanced(text: str, start: int) -> Optional[str]:
    """Return the brace-balanced span beginning at ``text[start]``.

    ``text[start]`` must be ``{``. Depth rises on ``{`` and falls on ``}``; the
    span ends, inclusively, where depth returns to zero. Returns ``None`` when
    the text ends first.
    """
    if start < 0 or start >= len(text) or text[start] != "{":
        return None
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def has_template_markers(args: str) -> bool:
    """True when ``args`` still carries ``{{...}}`` placeholders."""
    return "{{" in args or "}}" in args


def parse(mode: ParseMode | str, text: Optional[str], *, name_capacity: int = MAX_TOOL_NAME_LENGTH) -> Optional[ToolInvocation]:
    """Read a tool invocation from ``text`` using the grammar for ``mode``."""
    if not text:
        return None
    parser = _GRAMMARS[ParseMode(mode)]
    return parser(text, name_capacity)


def _parse_free_form(text: str, name_capacity: int) -> Optional[ToolInvocation]:
    marker = text.find(TOOL_CALL_MARKER)
    if marker == -1:
        return None

    cursor = marker + len(TOOL_CALL_MARKER)
    while cursor < len(text) and text[cursor] in " \n":
        cursor += 1
    line_end = text.find("\n", cursor)
    if line_end == -1:
        line_end = len(text)
    name = text[cursor:line_end][:name_capacity].rstrip()
    if not name:
        LOGGER.debug("TOOL_CALL marker present without a tool name")
        return None

    args_marker = text.find(ARGS_MARKER)
    if args_marker == -1:
        LOGGER.debug("Found TOOL_CALL but missing ARGS - defaulting to empty args")
        return ToolInvocation(name=name, args=EMPTY_ARGS)

    cursor = args_marker + len(ARGS_MARKER)
    while cursor < len(text) and text[cursor] in " \t\r\n":
        cursor += 1
    brace = text.find("{", cursor)
    if brace == -1:
        line_end = text.find("\n", cursor)
        raw = text[cursor:] if line_end == -1 else text[cursor:line_end]
        return ToolInvocation(name=name, args=raw.strip() or EMPTY_ARGS)

    args = scan_balanced(text, brace)
    if args is None:
        LOGGER.debug("Unbalanced ARGS object for tool %s - defaulting to empty args", name)
        args = EMPTY_ARGS
    return ToolInvocation(name=name, args=args)


def _parse_json(text: str, name_capacity: int) -> Optional[ToolInvocation]:
    tool_key = text.find(JSON_TOOL_KEY)
    args_key = text.find(JSON_ARGS_KEY)
    if tool_key == -1 or args_key == -1:
        return None

    name = _quoted_value_after(text, tool_key + len(JSON_TOOL_KEY))
    if not name or len(name) > name_capacity:
        return None

    args = EMPTY_ARGS
    brace = text.find("{", args_key + len(JSON_ARGS_KEY))
    if brace != -1:
        args = scan_balanced(text, brace) or EMPTY_ARGS
    return ToolInvocation(name=name, args=args)


def _quoted_value_after(text: str, cursor: int) -> Optional[str]:
    colon = text.find(":", cursor)
    if colon == -1:
        return None
    opening = text.find('"', colon + 1)
    if opening == -1:
        return None
    closing = text.find('"', opening + 1)
    if closing == -1:
        return None
    return text[opening + 1 : closing]


_GRAMMARS = {
    ParseMode.FREE_FORM: _parse_free_form,
    ParseMode.JSON: _parse_json,
}
