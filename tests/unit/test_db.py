"""Unit tests for the connection pool manager."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from psycopg.rows import dict_row

from docingest.config import settings
from docingest.db import DatabaseManager


class TestDatabaseManager:
    def test_initializes_pool_lazily(self) -> None:
        with patch("docingest.db.ConnectionPool") as pool_cls:
            manager = DatabaseManager("postgresql://u:p@db:5432/test")
            assert not manager.is_initialized

            with manager.get_connection() as conn:
                assert conn is pool_cls.return_value.connection.return_value.__enter__.return_value

        kwargs = pool_cls.call_args.kwargs
        assert kwargs["conninfo"] == "postgresql://u:p@db:5432/test"
        assert kwargs["min_size"] == settings.db_pool_min_size
        assert kwargs["kwargs"] == {"row_factory": dict_row, "autocommit": False}

    def test_initialize_twice_keeps_first_pool(self) -> None:
        with patch("docingest.db.ConnectionPool") as pool_cls:
            manager = DatabaseManager()
            manager.initialize(min_size=1, max_size=2)
            manager.initialize(min_size=1, max_size=2)
        assert pool_cls.call_count == 1

    def test_close_releases_pool(self) -> None:
        pool = MagicMock()
        with patch("docingest.db.ConnectionPool", return_value=pool):
            manager = DatabaseManager()
            manager.initialize()
            manager.close()

        pool.close.assert_called_once_with()
        assert not manager.is_initialized
