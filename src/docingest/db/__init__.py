"""Database connection management with connection pooling."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from psycopg import Connection
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from docingest.config import settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages the PostgreSQL connection pool shared by storage workers."""

    def __init__(self, conninfo: Optional[str] = None):
        self._conninfo = conninfo
        self._pool: Optional[ConnectionPool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self, min_size: Optional[int] = None, max_size: Optional[int] = None):
        """Initialize connection pool."""
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        min_size = min_size or settings.db_pool_min_size
        max_size = max(max_size or settings.db_pool_max_size, min_size)
        logger.info("Initializing database connection pool (min=%s, max=%s)", min_size, max_size)

        self._pool = ConnectionPool(
            conninfo=self._conninfo or settings.database_url,
            min_size=min_size,
            max_size=max_size,
            timeout=30,
            kwargs={
                "row_factory": dict_row,
                "autocommit": False,
            },
            open=True,
        )

        logger.info("Database connection pool initialized successfully")

    def close(self):
        """Close connection pool."""
        if self._pool:
            logger.info("Closing database connection pool")
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Generator[Connection, None, None]:
        """Get a connection from the pool (context manager)."""
        if self._pool is None:
            self.initialize()

        with self._pool.connection() as conn:
            yield conn


# Global database manager instance
db = DatabaseManager()


@contextmanager
def get_db_connection() -> Generator[Connection, None, None]:
    """Convenience function to get a database connection."""
    with db.get_connection() as conn:
        yield conn
