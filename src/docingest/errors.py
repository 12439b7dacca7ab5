"""Error taxonomy shared by the pipeline stages.

Each stage wraps backend-specific failures into its own error type and keeps
the original exception as ``__cause__``. The orchestrator never downgrades
these; callers can inspect ``stage`` to see where a document failed.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID


class IngestionError(Exception):
    """Base class for failures raised by a pipeline stage."""

    stage: str = "pipeline"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChunkingError(IngestionError):
    """Raised when a document cannot be split into chunks."""

    stage = "chunking"


class EmbeddingError(IngestionError):
    """Raised on embedding backend failure, timeout, or dimension mismatch."""

    stage = "embedding"


class StorageErrorKind(str, Enum):
    SCHEMA_MISMATCH = "schema_mismatch"
    BACKEND = "backend"


class StorageError(IngestionError):
    """Raised when the vector store rejects or fails a write.

    ``committed_ids`` lists the chunk ids written by sub-batches that
    committed before the failure; they are not rolled back.
    """

    stage = "storage"

    def __init__(
        self,
        message: str,
        *,
        kind: StorageErrorKind = StorageErrorKind.BACKEND,
        failed_range: Optional[Tuple[int, int]] = None,
        committed_ids: Optional[List[UUID]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.failed_range = failed_range
        self.committed_ids: List[UUID] = list(committed_ids or [])

    @property
    def is_schema_mismatch(self) -> bool:
        return self.kind is StorageErrorKind.SCHEMA_MISMATCH
