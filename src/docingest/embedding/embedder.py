"""Batch embedding of text chunks with parallel sub-batches."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import List, Optional, Sequence

from docingest.config import Settings, settings as default_settings
from docingest.errors import EmbeddingError
from docingest.models import EmbeddedChunk, TextChunk

from .client import EmbeddingClient, build_embedding_client

logger = logging.getLogger(__name__)


class BatchEmbedder:
    """Turns chunks into embedded chunks, preserving input order.

    Inputs larger than ``batch_size`` are split into contiguous sub-batches
    that run concurrently on the embedder's own pool. If any sub-batch fails
    the whole call fails and nothing is returned.
    """

    def __init__(
        self,
        client: EmbeddingClient,
        *,
        batch_size: int = 10,
        max_workers: int = 5,
        dimension: Optional[int] = None,
    ) -> None:
        self.client = client
        self.batch_size = batch_size if batch_size > 0 else 10
        self.dimension = dimension
        self._dimension_lock = Lock()
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="embedding-worker",
        )
        logger.info(
            "Initialized batch embedder with model %s, %s worker(s), batch size %s",
            client.model_name,
            max(1, max_workers),
            self.batch_size,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "BatchEmbedder":
        config = config or default_settings
        return cls(
            build_embedding_client(config),
            batch_size=config.embedding_batch_size,
            max_workers=config.embedding_workers,
            dimension=config.embedding_dimension,
        )

    @property
    def model_name(self) -> str:
        return self.client.model_name

    def embed_batch(self, chunks: Sequence[TextChunk]) -> List[EmbeddedChunk]:
        chunk_list = list(chunks)
        if not chunk_list:
            return []

        if len(chunk_list) <= self.batch_size:
            return self._embed_sub_batch(chunk_list, 0)

        logger.debug(
            "Embedding %s chunks in parallel sub-batches of %s", len(chunk_list), self.batch_size
        )
        futures: List[Future] = []
        for start in range(0, len(chunk_list), self.batch_size):
            sub_batch = chunk_list[start : start + self.batch_size]
            try:
                futures.append(self._pool.submit(self._embed_sub_batch, sub_batch, start))
            except RuntimeError as exc:
                raise EmbeddingError("Batch embedder has been closed") from exc

        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for index, future in enumerate(futures):
            if future in done and future.exception() is not None:
                exc = future.exception()
                start = index * self.batch_size
                end = min(start + self.batch_size, len(chunk_list))
                logger.error("Embedding sub-batch %s-%s failed: %s", start, end, exc)
                raise EmbeddingError(
                    f"Failed to embed chunks {start}-{end} of {len(chunk_list)}: {exc}"
                ) from exc

        embedded: List[EmbeddedChunk] = []
        for future in futures:
            embedded.extend(future.result())
        return embedded

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self.client.close()

    def _embed_sub_batch(self, chunks: List[TextChunk], offset: int) -> List[EmbeddedChunk]:
        texts = [chunk.content for chunk in chunks]
        try:
            vectors = self.client.embed_texts(texts)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding backend call failed: {exc}") from exc

        if len(vectors) != len(chunks):
            raise EmbeddingError(
                f"Embedding backend returned {len(vectors)} vector(s) for {len(chunks)} chunk(s)"
            )

        for vector in vectors:
            self._check_dimension(len(vector))

        logger.debug("Embedded sub-batch at offset %s (%s chunk(s))", offset, len(chunks))
        return [
            EmbeddedChunk.from_chunk(chunk, vector, self.model_name)
            for chunk, vector in zip(chunks, vectors)
        ]

    def _check_dimension(self, length: int) -> None:
        with self._dimension_lock:
            if self.dimension is None:
                self.dimension = length
                return
        if length != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {length}"
            )
