"""
PostgreSQL client with connection pooling, transactions and RLS tenant isolation.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation enforced via
PostgreSQL Row Level Security - the active organization ID is read from the
request contextvar and set as app.current_organization_id on each connection.

Security: No organization context = see nothing (RLS blocks all rows).
True admin bypass requires connecting as a role with BYPASSRLS.

Every financial mutation runs inside `transaction()`: all statements commit
together or the whole unit is rolled back. Driver errors are translated to
core.exceptions so callers never see psycopg2 types.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

from core.exceptions import ConflictError, PersistenceError
from utils.request_context import _current_organization_id, _current_user_id

logger = logging.getLogger(__name__)

# Errors that mean "someone else got there first" - safe to retry
_CONFLICT_ERRORS = (
    psycopg2.errors.SerializationFailure,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.LockNotAvailable,
    psycopg2.errors.UniqueViolation,
)

# Row locks taken inside a transaction give up after this long
_LOCK_TIMEOUT = "5s"

# Global UUID adapter registration flag
_uuid_registered = False


def translate_error(error: psycopg2.Error) -> Exception:
    """Map a driver error to ConflictError or PersistenceError."""
    if isinstance(error, _CONFLICT_ERRORS):
        return ConflictError(f"Concurrent modification: {error.pgerror or error}")
    return PersistenceError(f"Database operation failed: {error.pgerror or error}")


def _convert_params(params: Tuple | Dict | None) -> Tuple | Dict | None:
    """Convert UUID objects to strings."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


class Transaction:
    """
    Statements executed on one connection inside one transaction.

    Obtained from PostgresClient.transaction(); never commits on its own.
    """

    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        self._cursor.execute(query, _convert_params(params))
        if self._cursor.description:
            return [dict(row) for row in self._cursor.fetchall()]
        return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        row = self.execute_single(query, params)
        if row is None:
            return None
        return next(iter(row.values()))

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvars.

    Organization context is read from utils.request_context on each
    connection checkout.
    - Organization set → sees only that organization's rows
    - No organization → sees nothing (RLS blocks all rows)

    Usage:
        db = PostgresClient(database_url)

        with request_context(user_id, org_id):
            clients = db.execute("SELECT * FROM clients")

            with db.transaction() as tx:
                tx.execute("SELECT * FROM invoices WHERE id = %s FOR UPDATE", (invoice_id,))
                tx.execute("UPDATE invoices SET ...")
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                try:
                    pool = psycopg2.pool.ThreadedConnectionPool(
                        minconn=2,
                        maxconn=20,
                        dsn=self._database_url,
                        connect_timeout=30,
                    )
                except psycopg2.Error as e:
                    raise translate_error(e) from e
                global _uuid_registered
                if not _uuid_registered:
                    psycopg2.extras.register_uuid()
                    _uuid_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    def _set_session_context(self, conn) -> None:
        """Point the RLS session variables at the current request identity."""
        organization_id = _current_organization_id.get()
        user_id = _current_user_id.get()

        with conn.cursor() as cur:
            # Empty string becomes NULL in the RLS policies = no rows
            cur.execute(
                "SELECT set_config('app.current_organization_id', %s, false), "
                "set_config('app.current_user_id', %s, false)",
                (
                    str(organization_id) if organization_id is not None else "",
                    str(user_id) if user_id is not None else "",
                ),
            )
        conn.commit()

    @contextmanager
    def get_connection(self):
        """Get connection with RLS context from contextvars."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            try:
                conn = pool.getconn()
                if conn is None:
                    raise PersistenceError("Could not get connection from pool")
                self._set_session_context(conn)
            except psycopg2.Error as e:
                if conn is not None:
                    pool.putconn(conn, close=True)
                    conn = None
                error = translate_error(e)
                logger.error(f"Connection checkout failed: {error}")
                raise error from e

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run statements atomically.

        Commits when the block exits normally. Any exception rolls back;
        psycopg2 errors are re-raised as ConflictError/PersistenceError.
        """
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(f"SET LOCAL lock_timeout = '{_LOCK_TIMEOUT}'")
                    yield Transaction(cur)
                conn.commit()
            except psycopg2.Error as e:
                conn.rollback()
                error = translate_error(e)
                logger.warning(f"Transaction rolled back: {error}")
                raise error from e
            except BaseException:
                conn.rollback()
                raise

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self.transaction() as tx:
            return tx.execute_scalar(query, params)

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        return self.execute(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
