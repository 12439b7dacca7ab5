"""Query-side helpers over the vector store."""

from .search import clean_snippet, search_chunks

__all__ = ["clean_snippet", "search_chunks"]
