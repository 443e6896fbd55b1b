"""Fill embedding columns after extraction and register their similarity indexes."""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import AgentError
from .models.embeddings import EmbeddingClient, pack_vector
from .models.llm_client import ChatClient, LLMClientError
from .prompts import render_embedding_mapping_prompt
from .storage.schema import ColumnDescriptor, TargetSchema
from .storage.store import TabularStore, quote_identifier
from .storage.vector_index import IndexSpec, VectorIndex

__all__ = ["EMBED_FUNCTION", "EMBED_SEPARATOR", "EmbeddingOrchestrator", "EmbeddingReport", "parse_column_list"]

LOGGER = logging.getLogger(__name__)

EMBED_FUNCTION = "agent_embed"
EMBED_SEPARATOR = " | "

_LIST_SPLIT = re.compile(r"[,\n]")
_TOKEN_STRIP = " \t\r\"'`*-."


@dataclass(slots=True)
class EmbeddingReport:
    """Outcome of one orchestration pass."""

    mappings: Dict[str, List[str]] = field(default_factory=dict)
    updated: Dict[str, int] = field(default_factory=dict)
    indexes: List[IndexSpec] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def parse_column_list(response: str, candidates: Sequence[str]) -> List[str]:
    """Names from a comma-separated reply that are real candidates, in reply order."""
    allowed = set(candidates)
    chosen: List[str] = []
    for token in _LIST_SPLIT.split(response or ""):
        name = token.strip(_TOKEN_STRIP)
        if name in allowed and name not in chosen:
            chosen.append(name)
    return chosen


class EmbeddingOrchestrator:
    """Map each embedding column to source text columns and embed every row.

    Embeddings are computed inside SQLite through the ``agent_embed`` function,
    so one ``UPDATE`` per column covers all rows whose embedding is still NULL.
    A column that cannot be mapped or updated is logged and skipped.
    """

    def __init__(
        self,
        chat: ChatClient,
        embedder: EmbeddingClient,
        store: TabularStore,
        index: Optional[VectorIndex] = None,
    ) -> None:
        self._chat = chat
        self._embedder = embedder
        self._store = store
        self._index = index
        self._registered = False

    @property
    def index(self) -> VectorIndex:
        if self._index is None:
            self._index = VectorIndex(self._store)
        return self._index

    def _embed_sql(self, text: Optional[str]) -> Optional[bytes]:
        if text is None:
            return None
        return pack_vector(self._embedder.embed(text))

    def _ensure_function(self) -> None:
        if not self._registered:
            self._store.register_function(EMBED_FUNCTION, 1, self._embed_sql)
            self._registered = True

    def choose_sources(self, column: ColumnDescriptor, candidates: Sequence[str]) -> List[str]:
        prompt = render_embedding_mapping_prompt(candidates, column.name)
        response = self._chat.respond(prompt)
        chosen = parse_column_list(response or "", candidates)
        LOGGER.debug("Embedding column %s mapped to %s (reply: %r)", column.name, chosen, (response or "")[:200])
        return chosen

    def update_column(self, table: str, column: str, sources: Sequence[str]) -> int:
        self._ensure_function()
        pieces = f" || '{EMBED_SEPARATOR}' || ".join(
            f"COALESCE({quote_identifier(source)}, '')" for source in sources
        )
        target = quote_identifier(column)
        sql = (
            f"UPDATE {quote_identifier(table)} SET {target} = {EMBED_FUNCTION}({pieces}) "
            f"WHERE {target} IS NULL"
        )
        LOGGER.debug("Embedding update: %s", sql)
        return self._store.update(sql)

    def run(self, schema: TargetSchema) -> EmbeddingReport:
        report = EmbeddingReport()
        embedding_columns = schema.embedding_columns
        if not embedding_columns:
            return report

        candidates = [column.name for column in schema.text_columns]
        for column in embedding_columns:
            if not candidates:
                LOGGER.warning("No text columns available to embed into %s", column.name)
                report.skipped.append(column.name)
                continue
            try:
                sources = self.choose_sources(column, candidates)
            except LLMClientError as error:
                LOGGER.warning("Could not map embedding column %s: %s", column.name, error)
                report.skipped.append(column.name)
                continue
            if not sources:
                LOGGER.warning("Model named no usable source columns for %s", column.name)
                report.skipped.append(column.name)
                continue

            report.mappings[column.name] = sources
            try:
                report.updated[column.name] = self.update_column(schema.table, column.name, sources)
            except (sqlite3.Error, AgentError) as error:
                LOGGER.warning("Embedding update failed for %s: %s", column.name, error)
                report.skipped.append(column.name)
                continue
            LOGGER.info(
                "Embedded %d row(s) into %s.%s from %s",
                report.updated[column.name],
                schema.table,
                column.name,
                ", ".join(sources),
            )

        try:
            dimension = self._embedder.dimension()
        except (LLMClientError, AgentError) as error:
            LOGGER.warning("Embedding dimension unavailable; skipping index setup: %s", error)
            return report
        if dimension <= 0:
            return report

        for column in embedding_columns:
            try:
                report.indexes.append(self.index.init(schema.table, column.name, dimension))
            except (sqlite3.Error, AgentError) as error:
                LOGGER.warning("Vector index init failed for %s.%s: %s", schema.table, column.name, error)
        return report
