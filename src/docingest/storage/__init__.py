"""Vector store for embedded chunks."""

from .vector_store import DISTANCE_OPERATORS, PostgresVectorStore, enrich_metadata, to_vector_literal

__all__ = [
    "DISTANCE_OPERATORS",
    "PostgresVectorStore",
    "enrich_metadata",
    "to_vector_literal",
]
