"""Tabular storage, schema description, and similarity index adapters."""

from .schema import Affinity, ColumnDescriptor, TargetSchema, is_embedding_column, type_affinity
from .store import TabularStore, quote_identifier
from .vector_index import IndexSpec, VectorIndex

__all__ = [
    "Affinity",
    "ColumnDescriptor",
    "IndexSpec",
    "TabularStore",
    "TargetSchema",
    "VectorIndex",
    "is_embedding_column",
    "quote_identifier",
    "type_affinity",
]
