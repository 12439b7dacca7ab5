"""Unit tests for ``PostgresVectorStore`` against an in-memory pool."""

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

import psycopg
import pytest

from docingest.errors import StorageError, StorageErrorKind
from docingest.storage import PostgresVectorStore, enrich_metadata, to_vector_literal


def _store(fake_db, **kwargs) -> PostgresVectorStore:
    kwargs.setdefault("dimension", 3)
    return PostgresVectorStore(fake_db, **kwargs)


class TestVectorLiteral:
    def test_six_decimal_places(self) -> None:
        assert to_vector_literal([0.1234564, -0.6543214, 1]) == "[0.123456,-0.654321,1.000000]"

    def test_empty_vector(self) -> None:
        assert to_vector_literal([]) == "[]"


class TestStoreBatch:
    def test_empty_input_is_noop(self, fake_db) -> None:
        assert _store(fake_db).store_batch([]) == []
        assert fake_db.executed == []

    def test_small_batch_commits_each_chunk(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(5)
        ids = _store(fake_db, batch_size=20).store_batch(chunks)

        assert ids == [c.id for c in chunks]
        assert set(fake_db.rows) == set(ids)
        assert fake_db.commits == 5

    def test_upsert_replaces_existing_row(self, fake_db, make_embedded_chunks) -> None:
        """Storing the same id twice leaves one row with the latest content."""
        store = _store(fake_db)
        (original,) = make_embedded_chunks(1, content_prefix="A")
        updated = replace(original, content="B", embedding=(9.0, 9.0, 9.0))

        store.store_batch([original])
        store.store_batch([updated])

        assert list(fake_db.rows) == [original.id]
        assert fake_db.rows[original.id]["content"] == "B"
        assert fake_db.rows[original.id]["embedding"] == "[9.000000,9.000000,9.000000]"
        assert "ON CONFLICT (id) DO UPDATE" in fake_db.executed[-1][0]

    def test_metadata_is_enriched(self, fake_db, make_embedded_chunks) -> None:
        (chunk,) = make_embedded_chunks(1)
        chunk = replace(
            chunk,
            chunk_index=7,
            metadata={"author": "ada", "document_id": "bogus", "chunk_index": 99},
        )

        _store(fake_db).store_batch([chunk])

        metadata = fake_db.rows[chunk.id]["metadata"]
        assert metadata == {
            "author": "ada",
            "document_id": str(chunk.document_id),
            "chunk_index": 7,
            "embedding_model": "test-model",
        }
        assert enrich_metadata(chunk) == metadata

    def test_large_input_writes_sub_batches(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(45)
        ids = _store(fake_db, batch_size=20).store_batch(chunks)

        assert ids == [c.id for c in chunks]
        assert fake_db.commits == 3

    def test_very_large_input_uses_smaller_sub_batches(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(25)
        store = _store(fake_db, batch_size=10, large_input_threshold=20, large_batch_size=5)

        assert store.store_batch(chunks) == [c.id for c in chunks]
        assert fake_db.commits == 5

    def test_failed_sub_batch_keeps_earlier_commits(self, fake_db, make_embedded_chunks) -> None:
        """With 30 chunks in sub-batches of 10, a failing 3rd sub-batch leaves 20 stored."""
        chunks = make_embedded_chunks(30)
        fake_db.fail_on_ids = {chunks[25].id}
        store = _store(fake_db, batch_size=10)

        with pytest.raises(StorageError) as excinfo:
            store.store_batch(chunks)

        error = excinfo.value
        assert error.kind is StorageErrorKind.BACKEND
        assert error.failed_range == (20, 30)
        assert error.committed_ids == [c.id for c in chunks[:20]]
        assert isinstance(error.__cause__, psycopg.OperationalError)
        assert set(fake_db.rows) == {c.id for c in chunks[:20]}
        assert fake_db.rollbacks == 1

    def test_failure_aborts_remaining_sub_batches(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(30)
        fake_db.fail_on_ids = {chunks[0].id}

        with pytest.raises(StorageError) as excinfo:
            _store(fake_db, batch_size=10).store_batch(chunks)

        assert excinfo.value.failed_range == (0, 10)
        assert excinfo.value.committed_ids == []
        assert fake_db.rows == {}
        assert len(fake_db.executed) == 1

    def test_small_batch_failure_names_chunk(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(4)
        fake_db.fail_on_ids = {chunks[2].id}

        with pytest.raises(StorageError) as excinfo:
            _store(fake_db).store_batch(chunks)

        assert excinfo.value.failed_range == (2, 3)
        assert excinfo.value.committed_ids == [chunks[0].id, chunks[1].id]

    def test_dimension_mismatch_detected_before_write(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(3, dimension=4)

        with pytest.raises(StorageError) as excinfo:
            _store(fake_db, dimension=3).store_batch(chunks)

        assert excinfo.value.is_schema_mismatch
        assert fake_db.executed == []

    def test_backend_data_error_is_schema_mismatch(self, fake_db, make_embedded_chunks) -> None:
        chunks = make_embedded_chunks(2)
        fake_db.fail_on_ids = {chunks[0].id}
        fake_db.failure = psycopg.DataError("expected 1024 dimensions, not 3")

        with pytest.raises(StorageError) as excinfo:
            _store(fake_db, dimension=None).store_batch(chunks)

        assert excinfo.value.kind is StorageErrorKind.SCHEMA_MISMATCH


class TestStore:
    def test_store_single_chunk(self, fake_db, make_embedded_chunks) -> None:
        (chunk,) = make_embedded_chunks(1)
        assert _store(fake_db).store(chunk) == chunk.id
        assert fake_db.rows[chunk.id]["source"] == "notes.txt"

    def test_store_failure_is_wrapped(self, fake_db, make_embedded_chunks) -> None:
        (chunk,) = make_embedded_chunks(1)
        fake_db.fail_on_ids = {chunk.id}

        with pytest.raises(StorageError) as excinfo:
            _store(fake_db).store(chunk)

        assert excinfo.value.stage == "storage"
        assert fake_db.rows == {}


class TestSimilaritySearch:
    def test_returns_rows_in_backend_order(self, fake_db) -> None:
        first, second = uuid4(), uuid4()
        fake_db.search_rows = [
            {"id": first, "source": "a.txt", "content": "alpha", "metadata": {"chunk_index": 0}, "distance": 0.1},
            {"id": str(second), "source": "b.txt", "content": "beta", "metadata": '{"chunk_index": 4}', "distance": 0.3},
        ]

        results = _store(fake_db).similarity_search([0.1, 0.2, 0.3], limit=2)

        assert [r.id for r in results] == [first, second]
        assert results[1].metadata == {"chunk_index": 4}
        assert results[0].distance == pytest.approx(0.1)

        statement, params = fake_db.executed[-1]
        assert "<=>" in statement
        assert "ORDER BY embedding <=> %s::vector" in statement
        assert params == ("[0.100000,0.200000,0.300000]", "[0.100000,0.200000,0.300000]", 2)

    def test_distance_metric_selects_operator(self, fake_db) -> None:
        _store(fake_db, distance_metric="l2").similarity_search([0.0, 0.0, 0.0])
        assert "<->" in fake_db.executed[-1][0]

    def test_non_positive_limit(self, fake_db) -> None:
        with pytest.raises(ValueError, match="Limit"):
            _store(fake_db).similarity_search([0.0, 0.0, 0.0], limit=0)

    def test_query_dimension_checked(self, fake_db) -> None:
        with pytest.raises(StorageError) as excinfo:
            _store(fake_db).similarity_search([0.0, 0.0])
        assert excinfo.value.is_schema_mismatch


class TestConstruction:
    def test_rejects_unsafe_table_name(self, fake_db) -> None:
        with pytest.raises(ValueError, match="table name"):
            PostgresVectorStore(fake_db, table="chunks; DROP TABLE x")

    def test_rejects_unknown_metric(self, fake_db) -> None:
        with pytest.raises(ValueError, match="distance metric"):
            PostgresVectorStore(fake_db, distance_metric="hamming")
