#!/usr/bin/env python3
"""
Database initialization script for the ingestion pipeline.

Connects to PostgreSQL and runs the SQL migration files in the sql/
directory, in name order, to create the pgvector extension and the
chunk table.

Usage:
    python scripts/init_db.py
"""

import sys
from pathlib import Path

import psycopg

from docingest.config import settings

project_root = Path(__file__).parent.parent


def run_sql_file(conn: psycopg.Connection, sql_file: Path) -> None:
    """Execute a SQL file."""
    print(f"  Running {sql_file.name}...")

    sql_content = sql_file.read_text(encoding="utf-8")

    try:
        with conn.cursor() as cur:
            cur.execute(sql_content)
        conn.commit()
        print(f"  ✓ {sql_file.name} completed")
    except psycopg.Error as e:
        conn.rollback()
        print(f"  ✗ Error in {sql_file.name}: {e}")
        raise


def verify_table(conn: psycopg.Connection) -> None:
    """Report the pgvector version and the chunk table's embedding dimension."""
    with conn.cursor() as cur:
        cur.execute("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
        result = cur.fetchone()
        if result:
            print(f"  ✓ pgvector extension: v{result[0]}")
        else:
            print("  ✗ pgvector extension not found")

        cur.execute(
            """
            SELECT atttypmod FROM pg_attribute
            WHERE attrelid = to_regclass(%s) AND attname = 'embedding'
            """,
            (settings.vector_table,),
        )
        result = cur.fetchone()
        if not result:
            print(f"  ✗ Table {settings.vector_table} has no embedding column")
            return

        dimension = result[0]
        if dimension == settings.embedding_dimension:
            print(f"  ✓ {settings.vector_table}.embedding is vector({dimension})")
        else:
            print(
                f"  ✗ {settings.vector_table}.embedding is vector({dimension}) "
                f"but EMBEDDING_DIMENSION={settings.embedding_dimension}"
            )


def init_database() -> None:
    """Initialize the database schema."""
    print("=" * 60)
    print("Document Ingestion - Database Initialization")
    print("=" * 60)

    sql_dir = project_root / "sql"
    sql_files = sorted(sql_dir.glob("*.sql")) if sql_dir.exists() else []
    if not sql_files:
        print(f"Error: No SQL files found in {sql_dir}")
        sys.exit(1)

    print(f"\nFound {len(sql_files)} SQL migration files:")
    for f in sql_files:
        print(f"  - {f.name}")

    print("\nConnecting to database...")
    print(f"  Host: {settings.db_host}")
    print(f"  Port: {settings.db_port}")
    print(f"  Database: {settings.db_name}")
    print(f"  User: {settings.db_user}")

    try:
        with psycopg.connect(settings.database_url) as conn:
            print("✓ Connected successfully\n")

            print("Running migrations:")
            for sql_file in sql_files:
                run_sql_file(conn, sql_file)

            print("\nVerifying installation:")
            verify_table(conn)

            print("\n" + "=" * 60)
            print("✓ Database initialization completed successfully!")
            print("=" * 60)

    except psycopg.OperationalError as e:
        print(f"\n✗ Connection failed: {e}")
        print("\nTroubleshooting:")
        print("  1. Check that PostgreSQL is running and reachable")
        print("  2. Verify DB_* environment variables are set correctly")
        print(f"  3. Ensure database '{settings.db_name}' exists")
        sys.exit(1)
    except psycopg.Error as e:
        print(f"\n✗ Error during initialization: {e}")
        sys.exit(1)


if __name__ == "__main__":
    init_database()
