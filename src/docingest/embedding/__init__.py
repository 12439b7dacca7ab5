"""Embedding clients and the batch embedder."""

from .client import EmbeddingClient, KServeEmbeddingClient, StubEmbeddingClient, build_embedding_client
from .embedder import BatchEmbedder
from .payloads import normalize_embedding_data, parse_embedding_outputs

__all__ = [
    "BatchEmbedder",
    "EmbeddingClient",
    "KServeEmbeddingClient",
    "StubEmbeddingClient",
    "build_embedding_client",
    "normalize_embedding_data",
    "parse_embedding_outputs",
]
