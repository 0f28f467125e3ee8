"""PostgreSQL client for running the pricing table locally.

With ``USE_LOCAL_DB=1`` the pricing repository talks to a local PostgreSQL
database instead of Supabase. The AI process (or a developer with ``psql``)
fills in the pricing columns by hand, which makes offline demos possible.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

from cakegenie.domain.errors import DatabaseError

PRICING_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS {table} (
        rowid TEXT PRIMARY KEY,
        image TEXT NOT NULL,
        keyword TEXT,
        priceaddon NUMERIC,
        infoaddon TEXT,
        type TEXT,
        thickness TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""


class PostgresClient:
    """Small pooled client; psycopg2 is only imported when local mode is on."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None
        self._tables: set[str] = set()

        if self.enabled:
            from psycopg2 import pool

            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=5,
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "cakegenie"),
                    user=os.getenv("POSTGRES_USER", "cakegenie"),
                    password=os.getenv("POSTGRES_PASSWORD", "cakegenie_dev_password"),
                )
            except Exception as exc:  # pragma: no cover
                raise DatabaseError(f"Could not connect to local PostgreSQL: {exc}") from exc

    @contextmanager
    def transaction(self) -> Generator[Any, None, None]:
        """Borrow a pooled connection; commit on success, roll back on error."""
        if self._pool is None:
            raise DatabaseError("Local PostgreSQL database is not enabled")

        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def dict_cursor(self) -> Generator[Any, None, None]:
        from psycopg2.extras import RealDictCursor

        with self.transaction() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor

    def ensure_pricing_table(self, table: str) -> None:
        """Create the pricing table once per process if it does not exist yet."""
        if table in self._tables:
            return
        with self.dict_cursor() as cursor:
            cursor.execute(PRICING_TABLE_DDL.format(table=table))
        self._tables.add(table)

    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        with self.dict_cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None


_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Shared client when ``USE_LOCAL_DB=1``, otherwise None."""
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
