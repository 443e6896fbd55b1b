"""Typed description of the table a run extracts rows into."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Tuple

__all__ = ["Affinity", "ColumnDescriptor", "TargetSchema", "is_embedding_column", "type_affinity"]


class Affinity(str, Enum):
    """SQLite column affinity derived from a declared type."""

    INTEGER = "INTEGER"
    TEXT = "TEXT"
    BLOB = "BLOB"
    REAL = "REAL"
    NUMERIC = "NUMERIC"


def type_affinity(declared_type: str) -> Affinity:
    """Apply SQLite's affinity rules (section 3.1 of the datatype docs)."""
    upper = (declared_type or "").upper()
    if "INT" in upper:
        return Affinity.INTEGER
    if "CHAR" in upper or "CLOB" in upper or "TEXT" in upper:
        return Affinity.TEXT
    if "BLOB" in upper or not upper.strip():
        return Affinity.BLOB
    if "REAL" in upper or "FLOA" in upper or "DOUB" in upper:
        return Affinity.REAL
    return Affinity.NUMERIC


def is_embedding_column(name: str, declared_type: str) -> bool:
    """Embedding columns are BLOBs named ``embedding`` or ``*_embedding``."""
    if (declared_type or "").strip().upper() != "BLOB":
        return False
    return name == "embedding" or name.endswith("_embedding")


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """One column of the target table."""

    name: str
    declared_type: str
    is_embedding: bool = False

    @classmethod
    def from_declaration(cls, name: str, declared_type: str | None) -> "ColumnDescriptor":
        declared = declared_type or ""
        return cls(name=name, declared_type=declared, is_embedding=is_embedding_column(name, declared))

    @property
    def affinity(self) -> Affinity:
        return type_affinity(self.declared_type)


@dataclass(frozen=True, slots=True)
class TargetSchema:
    """Ordered columns of the target table."""

    table: str
    columns: Tuple[ColumnDescriptor, ...]

    @classmethod
    def from_columns(cls, table: str, columns: Iterable[ColumnDescriptor]) -> "TargetSchema":
        return cls(table=table, columns=tuple(columns))

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def value_columns(self) -> Tuple[ColumnDescriptor, ...]:
        """Columns that receive extracted values (everything but embeddings)."""
        return tuple(column for column in self.columns if not column.is_embedding)

    @property
    def embedding_columns(self) -> Tuple[ColumnDescriptor, ...]:
        return tuple(column for column in self.columns if column.is_embedding)

    @property
    def text_columns(self) -> Tuple[ColumnDescriptor, ...]:
        return tuple(column for column in self.value_columns if column.affinity is Affinity.TEXT)

    def describe(self) -> str:
        """Column listing shown to the model; embedding columns are omitted."""
        lines = ["Table columns:"]
        lines.extend(f"  - {column.name} ({column.declared_type})" for column in self.value_columns)
        return "\n".join(lines) + "\n"
