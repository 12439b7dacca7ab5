"""Immutable records handed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from uuid import UUID, uuid4


def _freeze(metadata: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True)
class Document:
    """Already-decoded document text plus its upload metadata."""

    filename: str
    content: str
    content_type: str = "text/plain"
    metadata: Mapping[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict (used for queued jobs)."""
        return {
            "id": str(self.id),
            "filename": self.filename,
            "content_type": self.content_type,
            "metadata": dict(self.metadata),
            "content": self.content,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Document":
        raw_id = payload.get("id")
        return cls(
            id=UUID(str(raw_id)) if raw_id else uuid4(),
            filename=payload.get("filename") or "",
            content=payload.get("content"),
            content_type=payload.get("content_type") or "text/plain",
            metadata=payload.get("metadata") or {},
        )


@dataclass(frozen=True)
class TextChunk:
    """A contiguous window of a document's text."""

    id: UUID
    document_id: UUID
    source: str
    content: str
    chunk_index: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))


@dataclass(frozen=True)
class EmbeddedChunk:
    """A text chunk together with its embedding vector."""

    id: UUID
    document_id: UUID
    source: str
    content: str
    chunk_index: int
    embedding: Tuple[float, ...]
    embedding_model: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))
        object.__setattr__(self, "embedding", tuple(float(v) for v in self.embedding))

    @classmethod
    def from_chunk(cls, chunk: TextChunk, embedding, embedding_model: str) -> "EmbeddedChunk":
        return cls(
            id=chunk.id,
            document_id=chunk.document_id,
            source=chunk.source,
            content=chunk.content,
            chunk_index=chunk.chunk_index,
            embedding=embedding,
            embedding_model=embedding_model,
            metadata=chunk.metadata,
        )

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass
class SearchResult:
    """Row returned by a similarity query, nearest first."""

    id: UUID
    source: Optional[str]
    content: str
    metadata: Dict[str, Any]
    distance: float
