"""
PostgreSQL access for the identity tables.

users, security_tokens and security_events are read before anyone is
signed in, so there is no per-user row filter here: every query is
scoped by its own WHERE clause.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

_adapters_registered = False
_adapters_lock = threading.Lock()


def _register_adapters() -> None:
    """jsonb columns come back as dicts; UUID parameters are sent as uuid."""
    global _adapters_registered
    with _adapters_lock:
        if not _adapters_registered:
            psycopg2.extras.register_default_jsonb(globally=True)
            psycopg2.extras.register_uuid()
            _adapters_registered = True


class PostgresClient:
    """
    Threaded connection pool handing out RealDictCursor rows.

    Outside `transaction()` each statement runs in its own transaction:
    committed when the cursor block exits cleanly, rolled back when it
    raises. Inside `transaction()` every statement issued by the same
    thread shares one connection and one commit.
    """

    def __init__(self, database_url: str, min_connections: int = 1, max_connections: int = 10):
        _register_adapters()
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=min_connections,
            maxconn=max_connections,
            dsn=database_url,
            connect_timeout=10,
        )
        self._local = threading.local()
        logger.info(f"Postgres pool ready ({min_connections}-{max_connections} connections)")

    @contextmanager
    def cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        conn = self._pool.getconn()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group this thread's statements into one transaction.

        Nested calls join the outermost transaction. Any exception leaving
        the outermost block rolls back every statement issued inside it.
        """
        if getattr(self._local, "cursor", None) is not None:
            yield
            return
        with self.cursor() as cur:
            self._local.cursor = cur
            try:
                yield
            finally:
                self._local.cursor = None

    @contextmanager
    def _statement_cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        shared = getattr(self._local, "cursor", None)
        if shared is not None:
            yield shared
        else:
            with self.cursor() as cur:
                yield cur

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Run a statement; rows as dicts, [] when it produces no result set."""
        with self._statement_cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """INSERT/UPDATE/DELETE ... RETURNING. An empty list means no row matched."""
        with self._statement_cursor() as cur:
            cur.execute(query, params)
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        self._pool.closeall()
        logger.info("Postgres pool closed")
