"""Similarity index over float32 embedding columns stored in SQLite."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..models.embeddings import unpack_vector
from .store import TabularStore, quote_identifier

__all__ = ["IndexSpec", "VectorIndex"]

LOGGER = logging.getLogger(__name__)

SUPPORTED_ELEMENT_TYPES = {"FLOAT32"}
SUPPORTED_DISTANCES = {"cosine", "l2", "dot"}


@dataclass(frozen=True, slots=True)
class IndexSpec:
    """Registered index for one embedding column."""

    table: str
    column: str
    dimension: int
    element_type: str
    distance: str


class VectorIndex:
    """Registry of embedding indexes plus a numpy full-scan search.

    Each ``(table, column)`` pair has at most one registered index; calling
    :meth:`init` again replaces its settings.
    """

    def __init__(self, store: TabularStore) -> None:
        self._store = store
        self._store.executescript(
            """
            CREATE TABLE IF NOT EXISTS vector_indexes (
                table_name TEXT NOT NULL,
                column_name TEXT NOT NULL,
                dimension INTEGER NOT NULL,
                element_type TEXT NOT NULL,
                distance TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (table_name, column_name)
            );
            """
        )

    def init(
        self,
        table: str,
        column: str,
        dimension: int,
        element_type: str = "FLOAT32",
        distance: str = "cosine",
    ) -> IndexSpec:
        element = element_type.upper()
        metric = distance.lower()
        if dimension <= 0:
            raise ConfigurationError(f"Index dimension must be positive, got {dimension}")
        if element not in SUPPORTED_ELEMENT_TYPES:
            raise ConfigurationError(f"Unsupported vector element type: {element_type}")
        if metric not in SUPPORTED_DISTANCES:
            raise ConfigurationError(f"Unsupported distance metric: {distance}")

        schema = self._store.table_schema(table)
        if column not in {descriptor.name for descriptor in schema}:
            raise ConfigurationError(f"Column {table}.{column} does not exist")

        self._store.update(
            """
            INSERT INTO vector_indexes (table_name, column_name, dimension, element_type, distance, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(table_name, column_name) DO UPDATE SET
                dimension = excluded.dimension,
                element_type = excluded.element_type,
                distance = excluded.distance,
                created_at = excluded.created_at
            """,
            (table, column, dimension, element, metric, datetime.now(timezone.utc).isoformat()),
        )
        LOGGER.info("Vector index initialized for %s.%s (dimension=%d, %s)", table, column, dimension, metric)
        return IndexSpec(table=table, column=column, dimension=dimension, element_type=element, distance=metric)

    def get(self, table: str, column: str) -> Optional[IndexSpec]:
        rows = self._store.query(
            "SELECT * FROM vector_indexes WHERE table_name = ? AND column_name = ?",
            (table, column),
        )
        if not rows:
            return None
        row = rows[0]
        return IndexSpec(
            table=row["table_name"],
            column=row["column_name"],
            dimension=row["dimension"],
            element_type=row["element_type"],
            distance=row["distance"],
        )

    def indexes(self) -> List[IndexSpec]:
        rows = self._store.query("SELECT table_name, column_name FROM vector_indexes ORDER BY table_name, column_name")
        return [spec for spec in (self.get(row["table_name"], row["column_name"]) for row in rows) if spec]

    def search(
        self,
        table: str,
        column: str,
        query: Sequence[float],
        limit: int = 5,
    ) -> List[Tuple[int, float]]:
        """Return ``(rowid, distance)`` pairs nearest to ``query``, closest first."""
        spec = self.get(table, column)
        if spec is None:
            raise ConfigurationError(f"No vector index initialized for {table}.{column}")

        query_vector = np.asarray(query, dtype=np.float32)
        if query_vector.shape != (spec.dimension,):
            raise ConfigurationError(
                f"Query has {query_vector.size} dimensions, index expects {spec.dimension}"
            )

        rows = self._store.query(
            f"SELECT rowid AS row_id, {quote_identifier(column)} AS vector FROM {quote_identifier(table)} "
            f"WHERE {quote_identifier(column)} IS NOT NULL"
        )
        rowids: List[int] = []
        vectors: List[np.ndarray] = []
        for row in rows:
            blob = row["vector"]
            if not isinstance(blob, (bytes, bytearray)) or len(blob) != spec.dimension * 4:
                continue
            rowids.append(row["row_id"])
            vectors.append(unpack_vector(bytes(blob)))
        if not vectors:
            return []

        matrix = np.vstack(vectors)
        distances = _distances(matrix, query_vector, spec.distance)
        order = np.argsort(distances, kind="stable")[: max(limit, 0)]
        return [(rowids[index], float(distances[index])) for index in order]


def _distances(matrix: np.ndarray, query: np.ndarray, metric: str) -> np.ndarray:
    if metric == "l2":
        return np.linalg.norm(matrix - query, axis=1)
    if metric == "dot":
        return -(matrix @ query)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    similarity = np.divide(matrix @ query, norms, out=np.zeros(len(matrix), dtype=np.float64), where=norms > 0)
    return 1.0 - similarity
