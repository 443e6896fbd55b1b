"""Turn collected tool output into typed rows of the target table.

The model is asked once for a JSON array of objects. The reply is not parsed
as JSON: each object span runs from a ``{`` to the next unescaped ``}``, and
every non-embedding column is looked up in the span by its quoted key. Columns
with INTEGER or REAL affinity get numbers; every other declared type keeps the
quoted string as written. Nested objects end a span early; the extraction
prompt asks for flat objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .config import section
from .conversation import ConversationState
from .errors import ConfigurationError
from .models.llm_client import ChatClient, LLMClientError, normalise_model_text, strip_code_fence
from .prompts import render_extraction_prompt
from .storage.schema import Affinity, TargetSchema
from .storage.store import TabularStore

__all__ = [
    "ExtractedRow",
    "ExtractionPipeline",
    "RawValue",
    "coerce_value",
    "find_value",
    "iter_object_spans",
]

LOGGER = logging.getLogger(__name__)

ExtractedRow = Dict[str, Any]

_BARE_TERMINATORS = ",}]\n\r\t "
_TRUE_TOKENS = {"true"}
_FALSE_TOKENS = {"false"}


@dataclass(frozen=True, slots=True)
class RawValue:
    """Unparsed value text following a key; ``quoted`` for string literals."""

    text: str
    quoted: bool = False

    @property
    def is_null(self) -> bool:
        return not self.quoted and self.text == "null"


def iter_object_spans(text: str) -> Iterator[str]:
    """Yield each ``{...}`` span, ending at the next unescaped ``}``."""
    cursor = 0
    while True:
        start = text.find("{", cursor)
        if start == -1:
            return
        end = _find_unescaped(text, "}", start + 1)
        if end == -1:
            return
        yield text[start : end + 1]
        cursor = end + 1


def find_value(span: str, key: str) -> Optional[RawValue]:
    """Locate ``"key":`` in ``span`` and return the raw value after it."""
    needle = f'"{key}"'
    search_from = 0
    while True:
        position = span.find(needle, search_from)
        if position == -1:
            return None
        cursor = _skip_whitespace(span, position + len(needle))
        if cursor < len(span) and span[cursor] == ":":
            break
        # Matched a string value that happens to equal the key; keep looking.
        search_from = position + len(needle)

    cursor = _skip_whitespace(span, cursor + 1)
    if cursor >= len(span):
        return None
    if span[cursor] == '"':
        closing = _find_unescaped(span, '"', cursor + 1)
        if closing == -1:
            return None
        return RawValue(text=span[cursor + 1 : closing], quoted=True)

    end = cursor
    while end < len(span) and span[end] not in _BARE_TERMINATORS:
        end += 1
    token = span[cursor:end]
    if not token:
        return None
    return RawValue(text=token)


def coerce_value(raw: Optional[RawValue], affinity: Affinity) -> Any:
    """Convert ``raw`` to the Python value bound for a column of ``affinity``."""
    if raw is None or raw.is_null:
        return None
    if affinity is Affinity.INTEGER:
        return _to_int(raw)
    if affinity is Affinity.REAL:
        return _to_float(raw)
    return raw.text if raw.quoted else None


def _to_int(raw: RawValue) -> Optional[int]:
    token = raw.text.strip()
    if not raw.quoted:
        lowered = token.lower()
        if lowered in _TRUE_TOKENS:
            return 1
        if lowered in _FALSE_TOKENS:
            return 0
    try:
        return int(token)
    except ValueError:
        pass
    number = _to_float(raw)
    if number is not None and number.is_integer():
        return int(number)
    return None


def _to_float(raw: RawValue) -> Optional[float]:
    try:
        number = float(raw.text.strip())
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def _find_unescaped(text: str, char: str, start: int) -> int:
    index = text.find(char, start)
    while index != -1:
        backslashes = 0
        cursor = index - 1
        while cursor >= 0 and text[cursor] == "\\":
            backslashes += 1
            cursor -= 1
        if backslashes % 2 == 0:
            return index
        index = text.find(char, index + 1)
    return -1


def _skip_whitespace(text: str, cursor: int) -> int:
    while cursor < len(text) and text[cursor] in " \t\r\n":
        cursor += 1
    return cursor


class ExtractionPipeline:
    """Ask the model for rows, coerce them, and insert them atomically."""

    def __init__(
        self,
        chat: ChatClient,
        store: TabularStore,
        *,
        history_limit: int = 6000,
    ) -> None:
        self._chat = chat
        self._store = store
        self._history_limit = history_limit

    @classmethod
    def from_config(
        cls,
        chat: ChatClient,
        store: TabularStore,
        config: Mapping[str, Any] | None,
    ) -> "ExtractionPipeline":
        agent_cfg = section(config, "agent")
        return cls(chat, store, history_limit=int(agent_cfg["extraction_history_limit"]))

    def build_prompt(self, schema: TargetSchema, conversation: ConversationState) -> str:
        return render_extraction_prompt(schema.describe(), conversation.head(self._history_limit))

    def request(self, schema: TargetSchema, conversation: ConversationState) -> str:
        """Send the extraction prompt in a fresh context; ``"[]"`` when the reply is empty."""
        prompt = self.build_prompt(schema, conversation)
        self._chat.create_context(self._chat.context_size() or None)
        LOGGER.debug("Extraction prompt (%d chars)", len(prompt))
        try:
            response = self._chat.respond(prompt)
        except LLMClientError as error:
            raise ConfigurationError("Failed to extract structured data") from error

        text = normalise_model_text(strip_code_fence(response or "")).strip()
        if not text:
            LOGGER.warning("Extraction response was empty; treating it as no rows")
            return "[]"
        LOGGER.debug("Extraction response: %s", text[:500])
        return text

    def extract_rows(self, schema: TargetSchema, response: str) -> List[ExtractedRow]:
        rows: List[ExtractedRow] = []
        for span in iter_object_spans(response):
            row = {
                column.name: coerce_value(find_value(span, column.name), column.affinity)
                for column in schema.value_columns
            }
            rows.append(row)
        return rows

    def insert(self, schema: TargetSchema, rows: List[ExtractedRow]) -> int:
        if not rows:
            LOGGER.info("No rows extracted for %s", schema.table)
            return 0
        columns = [column.name for column in schema.value_columns]
        values = [[row.get(name) for name in columns] for row in rows]
        inserted = self._store.insert_rows(schema.table, columns, values)
        LOGGER.info("Inserted %d row(s) into %s", inserted, schema.table)
        return inserted

    def run(self, schema: TargetSchema, conversation: ConversationState) -> int:
        response = self.request(schema, conversation)
        return self.insert(schema, self.extract_rows(schema, response))
