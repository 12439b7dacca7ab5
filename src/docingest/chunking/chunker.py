"""Fixed-size sliding window chunker."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid5

from docingest.errors import ChunkingError
from docingest.models import Document, TextChunk

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 100


def resolve_window(
    chunk_size: Optional[int],
    overlap_size: Optional[int],
    *,
    default_chunk_size: int = DEFAULT_CHUNK_SIZE,
    default_overlap: int = DEFAULT_OVERLAP,
) -> Tuple[int, int]:
    """Clamp caller supplied window parameters to usable values.

    Non-positive sizes fall back to the default; an overlap that is negative
    or not strictly smaller than the chunk size becomes
    ``min(default_overlap, chunk_size // 2)``.
    """
    size = chunk_size if chunk_size is not None and chunk_size > 0 else default_chunk_size
    if size <= 0:
        size = DEFAULT_CHUNK_SIZE
    overlap = default_overlap if overlap_size is None else overlap_size
    if overlap < 0 or overlap >= size:
        overlap = min(max(default_overlap, 0), size // 2)
    return size, overlap


def chunk_id_for(document_id: UUID, chunk_index: int) -> UUID:
    """Deterministic chunk id so re-processing a document upserts the same rows."""
    return uuid5(document_id, f"chunk-{chunk_index}")


class TextChunker(ABC):
    """Base class for chunking strategies."""

    chunker_type: str = ""

    def __init__(
        self,
        default_chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        self.default_chunk_size = default_chunk_size if default_chunk_size > 0 else DEFAULT_CHUNK_SIZE
        self.default_overlap = default_overlap

    def supports(self, document: Document) -> bool:
        return True

    def chunk(
        self,
        document: Document,
        chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
    ) -> List[TextChunk]:
        """Split ``document`` into ordered chunks indexed ``0..n-1``."""
        text = document.content
        if not isinstance(text, str):
            raise ChunkingError(
                f"Document {document.id} has no text content (got {type(text).__name__})"
            )
        if not text:
            logger.debug("Document %s is empty; no chunks produced", document.id)
            return []

        size, overlap = resolve_window(
            chunk_size,
            overlap_size,
            default_chunk_size=self.default_chunk_size,
            default_overlap=self.default_overlap,
        )
        try:
            chunks = self._split(document, text, size, overlap)
        except ChunkingError:
            raise
        except Exception as exc:
            raise ChunkingError(f"Failed to chunk document {document.id}: {exc}") from exc

        logger.debug(
            "Chunked document %s into %s chunk(s) (size=%s, overlap=%s)",
            document.id,
            len(chunks),
            size,
            overlap,
        )
        return chunks

    @abstractmethod
    def _split(self, document: Document, text: str, size: int, overlap: int) -> List[TextChunk]:
        ...

    def _build_chunk(self, document: Document, content: str, chunk_index: int) -> TextChunk:
        metadata: Dict[str, Any] = {
            "document_id": str(document.id),
            "chunk_index": chunk_index,
            "chunk_text_length": len(content),
        }
        if "source_type" in document.metadata:
            metadata["source_type"] = document.metadata["source_type"]

        return TextChunk(
            id=chunk_id_for(document.id, chunk_index),
            document_id=document.id,
            source=document.filename,
            content=content,
            chunk_index=chunk_index,
            metadata=metadata,
        )


class FixedSizeChunker(TextChunker):
    """Sliding window of ``chunk_size`` characters advancing by ``chunk_size - overlap``.

    Texts longer than ``parallel_threshold`` characters have their window
    start positions precomputed and split into contiguous segments that are
    chunked on a short-lived thread pool. The merged result is sorted by
    ``chunk_index`` so it matches the sequential output exactly.
    """

    chunker_type = "fixed-size"

    def __init__(
        self,
        default_chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_overlap: int = DEFAULT_OVERLAP,
        *,
        parallel_threshold: int = 200_000,
        segment_count: int = 4,
    ) -> None:
        super().__init__(default_chunk_size, default_overlap)
        self.parallel_threshold = parallel_threshold
        self.segment_count = max(1, segment_count)

    def _split(self, document: Document, text: str, size: int, overlap: int) -> List[TextChunk]:
        if len(text) <= size:
            return [self._build_chunk(document, text, 0)]

        starts = range(0, len(text), size - overlap)
        if len(text) <= self.parallel_threshold or self.segment_count == 1 or len(starts) < 2:
            return self._chunk_windows(document, text, size, starts, 0)
        return self._chunk_segments_parallel(document, text, size, starts)

    def _chunk_windows(
        self,
        document: Document,
        text: str,
        size: int,
        starts: Sequence[int],
        first_index: int,
    ) -> List[TextChunk]:
        length = len(text)
        return [
            self._build_chunk(document, text[start:min(start + size, length)], first_index + offset)
            for offset, start in enumerate(starts)
        ]

    def _chunk_segments_parallel(
        self,
        document: Document,
        text: str,
        size: int,
        starts: Sequence[int],
    ) -> List[TextChunk]:
        segments = min(self.segment_count, len(starts))
        per_segment = -(-len(starts) // segments)
        logger.info(
            "Chunking %s characters of document %s across %s segment(s)",
            len(text),
            document.id,
            segments,
        )

        with ThreadPoolExecutor(max_workers=segments, thread_name_prefix="chunk-segment") as pool:
            futures = [
                pool.submit(
                    self._chunk_windows,
                    document,
                    text,
                    size,
                    starts[first : first + per_segment],
                    first,
                )
                for first in range(0, len(starts), per_segment)
            ]
            chunks: List[TextChunk] = []
            for future in futures:
                chunks.extend(future.result())

        chunks.sort(key=lambda chunk: chunk.chunk_index)
        return chunks
