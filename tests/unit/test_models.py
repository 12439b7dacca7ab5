"""Unit tests for the pipeline records."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from docingest.models import Document, EmbeddedChunk, TextChunk


class TestDocument:
    def test_is_immutable(self) -> None:
        document = Document(filename="a.txt", content="text", metadata={"k": "v"})
        with pytest.raises(FrozenInstanceError):
            document.content = "changed"
        with pytest.raises(TypeError):
            document.metadata["k"] = "changed"

    def test_metadata_is_copied(self) -> None:
        metadata = {"k": "v"}
        document = Document(filename="a.txt", content="text", metadata=metadata)
        metadata["k"] = "changed"
        assert document.metadata["k"] == "v"

    def test_from_payload_keeps_identity(self) -> None:
        document = Document(filename="a.md", content="# Title", content_type="text/markdown")
        restored = Document.from_payload(document.to_payload())
        assert restored == document

    def test_from_payload_assigns_id_when_missing(self) -> None:
        restored = Document.from_payload({"filename": "a.txt", "content": "x"})
        assert restored.id is not None
        assert restored.content_type == "text/plain"


class TestEmbeddedChunk:
    def test_from_chunk_copies_fields(self) -> None:
        chunk = TextChunk(
            id=uuid4(),
            document_id=uuid4(),
            source="a.txt",
            content="text",
            chunk_index=2,
            metadata={"chunk_index": 2},
        )
        embedded = EmbeddedChunk.from_chunk(chunk, [1, 2, 3], "bge-m3")

        assert embedded.id == chunk.id
        assert embedded.chunk_index == 2
        assert embedded.embedding == (1.0, 2.0, 3.0)
        assert embedded.dimension == 3
        assert embedded.embedding_model == "bge-m3"
        assert embedded.metadata == chunk.metadata
