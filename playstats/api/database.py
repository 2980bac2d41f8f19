"""Query executors.

Handlers talk to the store through a prepared-statement interface::

    row = await db.prepare("SELECT COUNT(*) AS count FROM tracks").first()
    rows = await db.prepare("SELECT ... LIMIT ?").bind(10).all()

Rows are plain dicts of column name to scalar. Any failure surfaces as
`UpstreamQueryError` carrying the executor's message.
"""

import abc
import logging
import sqlite3
import threading
from typing import Any, Optional, Protocol, Sequence, Union

import httpx
from starlette.concurrency import run_in_threadpool

from .errors import UpstreamQueryError
from .settings import DatabaseSettings

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, None]
Row = dict[str, Scalar]


class Statement(Protocol):
    """A prepared statement."""

    def bind(self, *params: Any) -> "Statement":
        """Return a statement with positional parameters bound."""
        ...

    async def first(self) -> Optional[Row]:
        """Execute and return the first row, if any."""
        ...

    async def all(self) -> list[Row]:
        """Execute and return every row."""
        ...


class QueryExecutor(Protocol):
    """A store able to prepare statements."""

    def prepare(self, sql: str) -> Statement:
        """Prepare `sql` for execution."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


class BoundStatement:
    """Statement bound to an executor and a parameter tuple."""

    def __init__(self, executor: "_Executor", sql: str, params: Sequence[Any] = ()):
        self.executor = executor
        self.sql = sql
        self.params = tuple(params)

    def bind(self, *params: Any) -> "BoundStatement":
        """Return a copy of this statement with `params` bound."""
        return BoundStatement(self.executor, self.sql, params)

    async def first(self) -> Optional[Row]:
        """Execute and return the first row, if any."""
        rows = await self.executor.execute(self.sql, self.params)
        return rows[0] if rows else None

    async def all(self) -> list[Row]:
        """Execute and return every row."""
        return await self.executor.execute(self.sql, self.params)


class _Executor(abc.ABC):
    """Base executor, statements delegate execution to `execute`."""

    def prepare(self, sql: str) -> BoundStatement:
        """Prepare `sql` for execution."""
        return BoundStatement(self, sql)

    @abc.abstractmethod
    async def execute(self, sql: str, params: Sequence[Any]) -> list[Row]:
        """Execute `sql` with positional `params` and return all rows."""
        ...

    async def close(self) -> None:
        """Release resources."""
        return None


class SQLiteDatabase(_Executor):
    """SQLite executor running blocking calls in the thread pool.

    A single connection is shared and serialized with a lock, which also
    keeps ``:memory:`` databases alive for the executor's lifetime.
    """

    def __init__(self, path: str = ":memory:"):
        """Initialize SQLite executor.

        Args:
            path: Database file path or ``:memory:``
        """
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            logger.debug(f"Opened SQLite database at {self.path}")
        return self._conn

    def _execute_sync(self, sql: str, params: Sequence[Any]) -> list[Row]:
        with self._lock:
            try:
                cursor = self._connection().execute(sql, tuple(params))
                return [dict(row) for row in cursor.fetchall()]
            except (sqlite3.Error, OverflowError) as e:
                raise UpstreamQueryError(str(e)) from e

    def _executescript_sync(self, script: str) -> None:
        with self._lock:
            try:
                self._connection().executescript(script)
            except sqlite3.Error as e:
                raise UpstreamQueryError(str(e)) from e

    async def execute(self, sql: str, params: Sequence[Any]) -> list[Row]:
        """Execute `sql` and return all rows."""
        return await run_in_threadpool(self._execute_sync, sql, params)

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script (schema setup, fixtures)."""
        await run_in_threadpool(self._executescript_sync, script)

    async def close(self) -> None:
        """Close the connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class D1Database(_Executor):
    """Cloudflare D1 executor over the HTTP query API."""

    API_URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/d1/database/{database_id}/query"

    def __init__(
        self,
        account_id: str,
        database_id: str,
        api_token: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize D1 executor.

        Args:
            account_id: Cloudflare account identifier
            database_id: D1 database identifier
            api_token: API token with D1 read permission
            timeout: Request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.url = self.API_URL.format(account_id=account_id, database_id=database_id)
        self._client = client or httpx.AsyncClient(
            headers={"Authorization": f"Bearer {api_token}"}, timeout=timeout
        )

    async def execute(self, sql: str, params: Sequence[Any]) -> list[Row]:
        """Execute `sql` through the D1 API and return all rows."""
        try:
            response = await self._client.post(
                self.url, json={"sql": sql, "params": list(params)}
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamQueryError(f"D1 request failed: {e}") from e

        if not payload.get("success"):
            errors = payload.get("errors") or []
            message = "; ".join(str(err.get("message", err)) for err in errors)
            raise UpstreamQueryError(message or f"D1 query failed ({response.status_code})")

        results = payload.get("result") or []
        if not results:
            return []
        return list(results[0].get("results") or [])

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def database_from_settings(settings: DatabaseSettings) -> QueryExecutor:
    """Create the configured query executor."""
    if settings.backend == "d1":
        return D1Database(
            account_id=settings.d1_account_id,
            database_id=settings.d1_database_id,
            api_token=settings.d1_api_token.get_secret_value(),
            timeout=settings.d1_timeout,
        )

    return SQLiteDatabase(settings.sqlite_path)
