"""Document ingestion pipeline: chunk text, embed it, upsert into pgvector."""

__version__ = "0.1.0"
