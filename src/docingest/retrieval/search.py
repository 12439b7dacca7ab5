"""Vector similarity search helpers."""

from __future__ import annotations

import re
from typing import List, Optional

from docingest.embedding import EmbeddingClient, build_embedding_client
from docingest.errors import EmbeddingError
from docingest.models import SearchResult
from docingest.storage import PostgresVectorStore

_whitespace_re = re.compile(r"\s+")


def clean_snippet(snippet: Optional[str], *, max_length: int = 200) -> str:
    if not snippet:
        return ""
    collapsed = _whitespace_re.sub(" ", snippet).strip()
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[: max_length - 3].rstrip() + "..."


def search_chunks(
    query: str,
    *,
    limit: int = 5,
    client: Optional[EmbeddingClient] = None,
    store: Optional[PostgresVectorStore] = None,
) -> List[SearchResult]:
    """Search for chunks similar to a free-text query, nearest first."""

    if not query.strip():
        raise ValueError("Query cannot be empty")
    if limit <= 0:
        raise ValueError("Limit must be positive")

    owns_client = client is None
    client = client or build_embedding_client()
    try:
        embeddings = client.embed_texts([query])
    finally:
        if owns_client:
            client.close()

    if not embeddings or not embeddings[0]:
        raise EmbeddingError("Failed to generate embedding for query")

    store = store or PostgresVectorStore.from_settings()
    return store.similarity_search(embeddings[0], limit=limit)
