"""pgvector-backed chunk store with batched upserts."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import psycopg

from docingest.config import Settings, settings as default_settings
from docingest.db import DatabaseManager, db as default_db
from docingest.errors import StorageError, StorageErrorKind
from docingest.models import EmbeddedChunk, SearchResult

logger = logging.getLogger(__name__)

_table_name_re = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

DISTANCE_OPERATORS = {
    "cosine": "<=>",
    "l2": "<->",
    "inner_product": "<#>",
}

PROGRESS_LOG_EVERY = 5


def to_vector_literal(values: Sequence[float]) -> str:
    """Encode floats as a pgvector literal with six decimal places."""
    return "[" + ",".join("%.6f" % float(value) for value in values) + "]"


def enrich_metadata(chunk: EmbeddedChunk) -> Dict[str, Any]:
    metadata = dict(chunk.metadata)
    metadata["document_id"] = str(chunk.document_id)
    metadata["chunk_index"] = chunk.chunk_index
    metadata["embedding_model"] = chunk.embedding_model
    return metadata


def _classify(exc: psycopg.Error) -> StorageErrorKind:
    if isinstance(exc, (psycopg.DataError, psycopg.IntegrityError)):
        return StorageErrorKind.SCHEMA_MISMATCH
    return StorageErrorKind.BACKEND


class PostgresVectorStore:
    """Upserts embedded chunks into a pgvector table keyed by chunk id.

    Batches up to ``batch_size`` are written one chunk per transaction.
    Larger inputs are written as sequential sub-batches, one transaction
    each. When a sub-batch fails, the sub-batches before it stay committed
    and the raised ``StorageError`` lists their ids in ``committed_ids``.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        *,
        table: str = "knowledge_chunks",
        dimension: Optional[int] = None,
        batch_size: int = 20,
        large_input_threshold: int = 1000,
        large_batch_size: int = 10,
        distance_metric: str = "cosine",
    ) -> None:
        if not _table_name_re.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        if distance_metric not in DISTANCE_OPERATORS:
            raise ValueError(f"Unknown distance metric: {distance_metric!r}")

        self.database = database or default_db
        self.table = table
        self.dimension = dimension
        self.batch_size = max(1, batch_size)
        self.large_input_threshold = max(1, large_input_threshold)
        self.large_batch_size = max(1, min(large_batch_size, self.batch_size))
        self.distance_metric = distance_metric

        self._upsert_sql = f"""
            INSERT INTO {table} (id, source, content, metadata, embedding)
            VALUES (%s, %s, %s, CAST(%s AS jsonb), %s::vector)
            ON CONFLICT (id) DO UPDATE SET
                source = EXCLUDED.source,
                content = EXCLUDED.content,
                metadata = EXCLUDED.metadata,
                embedding = EXCLUDED.embedding
        """
        operator = DISTANCE_OPERATORS[distance_metric]
        self._search_sql = f"""
            SELECT id, source, content, metadata, embedding {operator} %s::vector AS distance
            FROM {table}
            ORDER BY embedding {operator} %s::vector
            LIMIT %s
        """

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        database: Optional[DatabaseManager] = None,
    ) -> "PostgresVectorStore":
        config = config or default_settings
        return cls(
            database,
            table=config.vector_table,
            dimension=config.embedding_dimension,
            batch_size=config.storage_batch_size,
            large_input_threshold=config.storage_large_input_threshold,
            large_batch_size=config.storage_large_batch_size,
            distance_metric=config.distance_metric,
        )

    def store(self, chunk: EmbeddedChunk) -> UUID:
        """Upsert a single chunk in its own transaction."""
        self._check_dimension(chunk.dimension, chunk.id)
        try:
            self._write([chunk])
        except psycopg.Error as exc:
            logger.error("Failed to store chunk %s: %s", chunk.id, exc)
            raise StorageError(
                f"Failed to store chunk {chunk.id}: {exc}",
                kind=_classify(exc),
            ) from exc
        return chunk.id

    def store_batch(self, chunks: Sequence[EmbeddedChunk]) -> List[UUID]:
        """Upsert chunks in order and return their ids in the same order."""
        chunk_list = list(chunks)
        if not chunk_list:
            return []

        for chunk in chunk_list:
            self._check_dimension(chunk.dimension, chunk.id)

        if len(chunk_list) <= self.batch_size:
            return self._store_each(chunk_list)

        sub_size = self.batch_size
        if len(chunk_list) > self.large_input_threshold:
            sub_size = self.large_batch_size
        total_batches = math.ceil(len(chunk_list) / sub_size)

        stored: List[UUID] = []
        for batch_number, start in enumerate(range(0, len(chunk_list), sub_size), start=1):
            sub_batch = chunk_list[start : start + sub_size]
            end = start + len(sub_batch)
            try:
                self._write(sub_batch)
            except psycopg.Error as exc:
                logger.error(
                    "Storage sub-batch %s/%s (chunks %s-%s) failed after %s committed: %s",
                    batch_number,
                    total_batches,
                    start,
                    end,
                    len(stored),
                    exc,
                )
                raise StorageError(
                    f"Failed to store chunks {start}-{end} of {len(chunk_list)}: {exc}",
                    kind=_classify(exc),
                    failed_range=(start, end),
                    committed_ids=list(stored),
                ) from exc

            stored.extend(chunk.id for chunk in sub_batch)
            if batch_number % PROGRESS_LOG_EVERY == 0 or batch_number == total_batches:
                logger.info("Stored batch %s/%s", batch_number, total_batches)

        return stored

    def similarity_search(self, vector: Sequence[float], limit: int = 5) -> List[SearchResult]:
        """Return the ``limit`` nearest rows, ordered by ascending distance."""
        if limit <= 0:
            raise ValueError("Limit must be positive")
        self._check_dimension(len(vector), None)

        literal = to_vector_literal(vector)
        try:
            with self.database.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(self._search_sql, (literal, literal, limit))
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Similarity search failed: {exc}", kind=_classify(exc)) from exc

        return [self._to_result(row) for row in rows]

    def _store_each(self, chunks: List[EmbeddedChunk]) -> List[UUID]:
        stored: List[UUID] = []
        for index, chunk in enumerate(chunks):
            try:
                self._write([chunk])
            except psycopg.Error as exc:
                logger.error("Failed to store chunk %s (index %s): %s", chunk.id, index, exc)
                raise StorageError(
                    f"Failed to store chunk {index} of {len(chunks)}: {exc}",
                    kind=_classify(exc),
                    failed_range=(index, index + 1),
                    committed_ids=list(stored),
                ) from exc
            stored.append(chunk.id)
        logger.debug("Stored %s chunk(s) individually", len(stored))
        return stored

    def _write(self, chunks: List[EmbeddedChunk]) -> None:
        params = [self._row_params(chunk) for chunk in chunks]
        with self.database.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.executemany(self._upsert_sql, params)
                conn.commit()
            except psycopg.Error:
                conn.rollback()
                raise

    def _row_params(self, chunk: EmbeddedChunk):
        return (
            chunk.id,
            chunk.source,
            chunk.content,
            json.dumps(enrich_metadata(chunk), default=str),
            to_vector_literal(chunk.embedding),
        )

    def _check_dimension(self, length: int, chunk_id: Optional[UUID]) -> None:
        if self.dimension is None or length == self.dimension:
            return
        target = f"chunk {chunk_id}" if chunk_id else "query vector"
        raise StorageError(
            f"Vector length {length} for {target} does not match column dimension {self.dimension}",
            kind=StorageErrorKind.SCHEMA_MISMATCH,
        )

    @staticmethod
    def _to_result(row: Dict[str, Any]) -> SearchResult:
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        raw_id = row["id"]
        return SearchResult(
            id=raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id)),
            source=row.get("source"),
            content=row.get("content") or "",
            metadata=dict(metadata),
            distance=float(row["distance"]),
        )
