"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import json
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Set
from uuid import UUID, uuid4

import psycopg
import pytest

from docingest.models import Document, EmbeddedChunk


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── In-memory stand-in for the Postgres pool ────────────────────────────


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self._results: List[Dict[str, Any]] = []

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def execute(self, query: str, params: Any = None) -> None:
        database = self.connection.database
        statement = " ".join(query.split())
        database.executed.append((statement, params))

        if statement.upper().startswith("INSERT"):
            chunk_id, source, content, metadata_json, vector = params
            if chunk_id in database.fail_on_ids:
                raise database.failure
            self.connection.pending[chunk_id] = {
                "id": chunk_id,
                "source": source,
                "content": content,
                "metadata": json.loads(metadata_json),
                "embedding": vector,
            }
        elif statement.upper().startswith("SELECT"):
            self._results = list(database.search_rows)

    def executemany(self, query: str, params_seq: List[Any]) -> None:
        for params in params_seq:
            self.execute(query, params)

    def fetchall(self) -> List[Dict[str, Any]]:
        return self._results


class FakeConnection:
    def __init__(self, database: "FakeDatabase") -> None:
        self.database = database
        self.pending: Dict[UUID, Dict[str, Any]] = {}

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        with self.database.lock:
            self.database.rows.update(self.pending)
            self.database.commits += 1
        self.pending.clear()

    def rollback(self) -> None:
        self.pending.clear()
        with self.database.lock:
            self.database.rollbacks += 1


class FakeDatabase:
    """Honours commit/rollback and insert-or-update by id."""

    def __init__(self) -> None:
        self.rows: Dict[UUID, Dict[str, Any]] = {}
        self.fail_on_ids: Set[UUID] = set()
        self.failure: Exception = psycopg.OperationalError("connection lost")
        self.search_rows: List[Dict[str, Any]] = []
        self.executed: List[Any] = []
        self.commits = 0
        self.rollbacks = 0
        self.lock = Lock()

    @contextmanager
    def get_connection(self) -> Iterator[FakeConnection]:
        yield FakeConnection(self)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def make_document() -> Callable[..., Document]:
    def _make(content: str = "hello world", filename: str = "notes.txt", **metadata: Any) -> Document:
        return Document(filename=filename, content=content, metadata=metadata)

    return _make


@pytest.fixture
def make_embedded_chunks() -> Callable[..., List[EmbeddedChunk]]:
    def _make(
        count: int,
        dimension: int = 3,
        document_id: Optional[UUID] = None,
        content_prefix: str = "chunk",
    ) -> List[EmbeddedChunk]:
        document_id = document_id or uuid4()
        return [
            EmbeddedChunk(
                id=uuid4(),
                document_id=document_id,
                source="notes.txt",
                content=f"{content_prefix} {index}",
                chunk_index=index,
                embedding=[float(index)] * dimension,
                embedding_model="test-model",
                metadata={"chunk_index": index},
            )
            for index in range(count)
        ]

    return _make
