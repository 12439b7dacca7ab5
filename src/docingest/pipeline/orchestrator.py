"""Staged, concurrent ingestion of documents: chunk, embed, store."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from threading import Lock
from typing import Callable, Iterable, List, Optional, Sequence
from uuid import UUID

from docingest.chunking import TextChunker, get_chunker
from docingest.config import Settings, settings as default_settings
from docingest.db import DatabaseManager
from docingest.embedding import BatchEmbedder
from docingest.models import Document, EmbeddedChunk, TextChunk
from docingest.storage import PostgresVectorStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Runs each document through chunking, embedding and storage.

    Every stage has its own bounded thread pool, so a slow embedding backend
    does not hold up chunking of other documents. A document's stages are
    chained with future callbacks: no thread blocks waiting on another stage.
    The future returned by ``process_document`` resolves to the stored chunk
    ids in chunk order, or to the first stage error unchanged.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedder: BatchEmbedder,
        vector_store: PostgresVectorStore,
        *,
        chunking_workers: int = 5,
        embedding_workers: int = 5,
        storage_workers: int = 5,
        chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
        close_components: bool = False,
    ) -> None:
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.chunk_size = chunk_size
        self.overlap_size = overlap_size
        self._close_components = close_components

        self._chunking_pool = ThreadPoolExecutor(
            max_workers=max(1, chunking_workers), thread_name_prefix="chunking-stage"
        )
        self._embedding_pool = ThreadPoolExecutor(
            max_workers=max(1, embedding_workers), thread_name_prefix="embedding-stage"
        )
        self._storage_pool = ThreadPoolExecutor(
            max_workers=max(1, storage_workers), thread_name_prefix="storage-stage"
        )
        self._lock = Lock()
        self._closed = False

        logger.info(
            "Ingestion pipeline started (chunking=%s, embedding=%s, storage=%s workers)",
            max(1, chunking_workers),
            max(1, embedding_workers),
            max(1, storage_workers),
        )

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        database: Optional[DatabaseManager] = None,
        *,
        chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
    ) -> "IngestionPipeline":
        config = config or default_settings
        return cls(
            get_chunker(config=config),
            BatchEmbedder.from_settings(config),
            PostgresVectorStore.from_settings(config, database),
            chunking_workers=config.chunking_workers,
            embedding_workers=config.embedding_stage_workers,
            storage_workers=config.storage_workers,
            chunk_size=chunk_size,
            overlap_size=overlap_size,
            close_components=True,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def process_document(self, document: Document) -> "Future[List[UUID]]":
        result: Future = Future()
        # Callers may abandon the handle but cannot cancel work mid-stage.
        result.set_running_or_notify_cancel()
        started = time.perf_counter()

        with self._lock:
            if self._closed:
                result.set_exception(RuntimeError("Ingestion pipeline has been shut down"))
                return result
            logger.info("Processing document %s (%s)", document.id, document.filename)
            self._submit(
                self._chunking_pool,
                self._chunk,
                document,
                result,
                partial(self._after_chunking, document, result, started),
            )
        return result

    def process_documents(self, documents: Iterable[Document]) -> List["Future[List[UUID]]"]:
        return [self.process_document(document) for document in documents]

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting documents and drain the stage pools in stage order."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        logger.info("Shutting down ingestion pipeline (wait=%s)", wait)
        self._chunking_pool.shutdown(wait=wait)
        self._embedding_pool.shutdown(wait=wait)
        self._storage_pool.shutdown(wait=wait)
        if self._close_components:
            self.embedder.close()

    def __enter__(self) -> "IngestionPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def _chunk(self, document: Document) -> List[TextChunk]:
        chunks = self.chunker.chunk(document, self.chunk_size, self.overlap_size)
        logger.info("Chunked document %s into %s chunk(s)", document.id, len(chunks))
        return chunks

    def _embed(self, chunks: Sequence[TextChunk]) -> List[EmbeddedChunk]:
        return self.embedder.embed_batch(chunks)

    def _store(self, chunks: Sequence[EmbeddedChunk]) -> List[UUID]:
        return self.vector_store.store_batch(chunks)

    def _after_chunking(self, document: Document, result: Future, started: float, stage: Future) -> None:
        chunks = self._stage_output(stage, document, result, "chunking")
        if chunks is None:
            return
        self._submit(
            self._embedding_pool,
            self._embed,
            chunks,
            result,
            partial(self._after_embedding, document, result, started),
        )

    def _after_embedding(self, document: Document, result: Future, started: float, stage: Future) -> None:
        embedded = self._stage_output(stage, document, result, "embedding")
        if embedded is None:
            return
        self._submit(
            self._storage_pool,
            self._store,
            embedded,
            result,
            partial(self._after_storage, document, result, started),
        )

    def _after_storage(self, document: Document, result: Future, started: float, stage: Future) -> None:
        ids = self._stage_output(stage, document, result, "storage")
        if ids is None:
            return
        logger.info(
            "Stored %s chunk(s) for document %s in %.2fs",
            len(ids),
            document.id,
            time.perf_counter() - started,
        )
        result.set_result(ids)

    @staticmethod
    def _submit(
        pool: ThreadPoolExecutor,
        fn: Callable,
        arg,
        result: Future,
        on_done: Callable[[Future], None],
    ) -> None:
        try:
            stage = pool.submit(fn, arg)
        except RuntimeError as exc:
            result.set_exception(RuntimeError(f"Ingestion pipeline has been shut down: {exc}"))
            return
        stage.add_done_callback(on_done)

    @staticmethod
    def _stage_output(stage: Future, document: Document, result: Future, name: str):
        exc = stage.exception()
        if exc is None:
            return stage.result()
        logger.error(
            "Document %s failed during %s: %s",
            document.id,
            name,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        result.set_exception(exc)
        return None


_pipeline: Optional[IngestionPipeline] = None
_pipeline_lock = Lock()


def get_pipeline() -> IngestionPipeline:
    """Return the process-wide pipeline, creating it on first use."""
    global _pipeline
    with _pipeline_lock:
        if _pipeline is None or _pipeline.closed:
            _pipeline = IngestionPipeline.from_settings()
        return _pipeline


def shutdown_pipeline(wait: bool = True) -> None:
    """Drain and discard the process-wide pipeline, if one was created."""
    global _pipeline
    with _pipeline_lock:
        pipeline, _pipeline = _pipeline, None
    if pipeline is not None:
        pipeline.shutdown(wait=wait)
