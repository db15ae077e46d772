"""
multidb DB Backend — Base connection interface.

Every engine variant implements the same capability surface on top of its
driver's pool: ``connect``, ``disconnect``, ``query``, ``execute`` (stored
routines), ``begin_transaction``, ``test_connection``, ``get_stats`` and
``server_info``.

The base class owns everything that is not driver specific:
- connect/disconnect state guarded by an ``asyncio.Lock``
- named parameter translation
- connect / acquire / query timeouts
- wrapping driver errors into ``DatabaseFault`` subclasses

Subclasses provide the driver hooks (``_create_pool``, ``_probe``,
``_close_pool``, ``_run_on``, ``_begin``, ``_commit``, ``_rollback``,
``_routine_sql``, ``_pool_counters``).
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Sequence, Tuple

from ...config import BackendType, DatabaseConfig
from ...faults import (
    ConnectionFailedFault,
    DatabaseFault,
    QueryFailedFault,
    TransactionFailedFault,
)
from ..params import translate
from ..results import ConnectionStats, QueryResult
from ..transaction import Transaction

__all__ = ["BackendConnection"]

# dbo.usp_Report, reporting.refresh_totals, sales.dbo.usp_Load
_ROUTINE_RE = re.compile(r"^[A-Za-z_][\w$#]*(\.[A-Za-z_][\w$#]*){0,2}$")
_PARAM_NAME_RE = re.compile(r"^[A-Za-z_]\w*$")


def _reason(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class BackendConnection(ABC):
    """
    Abstract connection to one logical database.

    Instances are created by the registry (or ``create_connection``) and own
    exactly one native pool while connected.
    """

    backend_type: BackendType
    param_style: str = "qmark"  # qmark (?) | format (%s) | numeric ($1)
    driver_name: str = ""
    install_hint: str = ""
    server_info_sql: str = ""

    def __init__(self, config: DatabaseConfig):
        if config.backend is not self.backend_type:
            raise ValueError(
                f"{self.__class__.__name__} cannot serve a {config.backend.value} configuration"
            )
        self.config = config
        self.name = config.name
        self._pool: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"multidb.db.backends.{self.dialect}")

    # ── Driver hooks ─────────────────────────────────────────────────

    @abstractmethod
    def _driver_available(self) -> bool:
        """Whether the driver module imported."""
        ...

    @abstractmethod
    async def _create_pool(self) -> Any:
        """Create the native pool from ``self.config``."""
        ...

    @abstractmethod
    async def _probe(self, pool: Any) -> None:
        """Liveness check run once right after the pool is created."""
        ...

    @abstractmethod
    async def _close_pool(self, pool: Any) -> None:
        ...

    @abstractmethod
    async def _run_on(self, conn: Any, sql: str, values: Sequence[Any]) -> QueryResult:
        """Run native SQL on one checked-out connection."""
        ...

    @abstractmethod
    async def _begin(self, conn: Any) -> Any:
        """Start a transaction on ``conn``; the return value is handed back to commit/rollback."""
        ...

    @abstractmethod
    async def _commit(self, conn: Any, state: Any) -> None:
        ...

    @abstractmethod
    async def _rollback(self, conn: Any, state: Any) -> None:
        ...

    @abstractmethod
    def _routine_sql(self, routine: str, params: Any) -> Tuple[str, Sequence[Any]]:
        """Native statement calling a stored routine."""
        ...

    @abstractmethod
    async def _close_connection(self, conn: Any) -> None:
        """Close one checked-out connection so the pool never hands it out again."""
        ...

    def _pool_counters(self) -> Optional[Tuple[int, int]]:
        """(total, idle) from the live pool, or None when the driver hides them."""
        return None

    async def _acquire(self) -> Any:
        return await self._pool.acquire()

    async def _release(self, conn: Any) -> None:
        await self._pool.release(conn)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self) -> None:
        """
        Create the pool and verify it with a liveness probe.

        Idempotent. Any failure leaves the connection disconnected and
        raises ``ConnectionFailedFault``.
        """
        async with self._lock:
            if self._connected:
                return

            if not self._driver_available():
                raise ConnectionFailedFault(
                    self.name,
                    self.backend_type,
                    f"{self.driver_name} is required for {self.backend_type.value} support. "
                    f"Install: {self.install_hint}",
                )

            timeout = self.config.pool.connect_timeout
            pool = None
            try:
                pool = await asyncio.wait_for(self._create_pool(), timeout)
                await asyncio.wait_for(self._probe(pool), timeout)
            except Exception as exc:
                if pool is not None:
                    await self._close_quietly(pool)
                if isinstance(exc, asyncio.TimeoutError):
                    reason = f"timed out after {timeout}s"
                else:
                    reason = _reason(exc)
                self.logger.error(f"[{self.name}] Connection failed: {reason}")
                raise ConnectionFailedFault(
                    self.name, self.backend_type, reason, cause=exc
                ) from exc

            self._pool = pool
            self._connected = True
            self.logger.info(f"[{self.name}] Connected to {self._target()}")

    async def disconnect(self) -> None:
        """Close the pool. Idempotent; the handle is cleared even if close fails."""
        async with self._lock:
            pool = self._pool
            self._pool = None
            was_connected = self._connected
            self._connected = False
            if pool is None:
                return
            try:
                await self._close_pool(pool)
            except Exception as exc:
                self.logger.error(f"[{self.name}] Error while closing pool: {_reason(exc)}")
                raise ConnectionFailedFault(
                    self.name, self.backend_type, f"close failed: {_reason(exc)}", cause=exc
                ) from exc
            if was_connected:
                self.logger.info(f"[{self.name}] Disconnected")

    async def _close_quietly(self, pool: Any) -> None:
        try:
            await self._close_pool(pool)
        except Exception as exc:
            self.logger.warning(f"[{self.name}] Discarding half-built pool failed: {_reason(exc)}")

    async def _ensure_connected(self) -> None:
        if not self._connected:
            await self.connect()

    @property
    def is_connected(self) -> bool:
        return self._connected and self._pool is not None

    @property
    def dialect(self) -> str:
        return self.backend_type.value

    def _target(self) -> str:
        """Password-free ``host:port/database`` for log lines."""
        return f"{self.config.host}:{self.config.port}/{self.config.database}"

    # ── Queries ──────────────────────────────────────────────────────

    def _prepare(self, sql: str, params: Any) -> Tuple[str, Sequence[Any]]:
        """
        Named mapping (or None) -> translated native SQL and values.
        A sequence is taken as native positional values and passed through.
        """
        if params is None or isinstance(params, Mapping):
            translated = translate(sql, params, self.param_style)
            return translated.sql, translated.values
        if isinstance(params, (str, bytes)):
            raise QueryFailedFault(
                self.name, self.backend_type,
                "params must be a mapping or a sequence, not a string",
                sql=sql,
            )
        return sql, tuple(params)

    async def _timed(self, coro: Any) -> Any:
        timeout = self.config.pool.query_timeout
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)

    async def _checkout(self, fault: type, **fault_kwargs) -> Any:
        """Acquire a pooled connection within the acquire timeout."""
        timeout = self.config.pool.acquire_timeout
        try:
            return await asyncio.wait_for(self._acquire(), timeout)
        except asyncio.TimeoutError as exc:
            raise fault(
                self.name, self.backend_type,
                f"no connection available within {timeout}s",
                cause=exc, **fault_kwargs,
            ) from exc
        except Exception as exc:
            raise fault(
                self.name, self.backend_type, _reason(exc), cause=exc, **fault_kwargs
            ) from exc

    async def _release_quietly(self, conn: Any) -> None:
        try:
            await self._release(conn)
        except Exception as exc:
            self.logger.warning(f"[{self.name}] Releasing connection failed: {_reason(exc)}")

    async def _discard(self, conn: Any) -> None:
        try:
            await self._close_connection(conn)
        except Exception as exc:
            self.logger.warning(f"[{self.name}] Closing connection failed: {_reason(exc)}")
        await self._release_quietly(conn)

    async def run_on(
        self, conn: Any, sql: str, values: Sequence[Any], *, source_sql: str
    ) -> QueryResult:
        """Run native SQL on ``conn`` with the query timeout; driver errors become QueryFailedFault."""
        try:
            return await self._timed(self._run_on(conn, sql, values))
        except DatabaseFault:
            raise
        except asyncio.TimeoutError as exc:
            reason = f"timed out after {self.config.pool.query_timeout}s"
            self.logger.error(f"[{self.name}] Query {reason}")
            raise QueryFailedFault(
                self.name, self.backend_type, reason, sql=source_sql, cause=exc
            ) from exc
        except Exception as exc:
            self.logger.error(f"[{self.name}] Query failed: {_reason(exc)}")
            raise QueryFailedFault(
                self.name, self.backend_type, _reason(exc), sql=source_sql, cause=exc
            ) from exc

    async def _run_pooled(self, sql: str, values: Sequence[Any], source_sql: str) -> QueryResult:
        conn = await self._checkout(QueryFailedFault, sql=source_sql)
        reusable = False
        try:
            result = await self.run_on(conn, sql, values, source_sql=source_sql)
            reusable = True
            return result
        except QueryFailedFault as exc:
            # A timed-out statement may still be running on the session
            reusable = not isinstance(exc.cause, asyncio.TimeoutError)
            raise
        finally:
            if reusable:
                await self._release_quietly(conn)
            else:
                await self._discard(conn)

    async def query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any] | Sequence[Any]] = None,
    ) -> QueryResult:
        """
        Run a statement and return normalized rows.

        ``params`` is a mapping for ``@name`` / ``:name`` markers, or a
        sequence of values already matching the native placeholder style.
        """
        await self._ensure_connected()
        native_sql, values = self._prepare(sql, params)
        self.logger.debug(f"[{self.name}] {native_sql}")
        return await self._run_pooled(native_sql, values, sql)

    async def execute(
        self,
        routine: str,
        params: Optional[Mapping[str, Any] | Sequence[Any]] = None,
    ) -> QueryResult:
        """Call a stored routine by (optionally schema-qualified) name."""
        if not _ROUTINE_RE.match(routine or ""):
            raise QueryFailedFault(
                self.name, self.backend_type, f"invalid routine name {routine!r}"
            )
        if isinstance(params, Mapping):
            for key in params:
                if not _PARAM_NAME_RE.match(str(key).lstrip("@:")):
                    raise QueryFailedFault(
                        self.name, self.backend_type, f"invalid parameter name {key!r}"
                    )
        elif isinstance(params, (str, bytes)):
            raise QueryFailedFault(
                self.name, self.backend_type,
                "params must be a mapping or a sequence, not a string",
            )

        await self._ensure_connected()
        native_sql, values = self._routine_sql(routine, params)
        self.logger.debug(f"[{self.name}] {native_sql}")
        return await self._run_pooled(native_sql, values, native_sql)

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> Transaction:
        """Check out a dedicated connection and start a transaction on it."""
        await self._ensure_connected()
        conn = await self._checkout(TransactionFailedFault, operation="begin")
        try:
            state = await self._begin(conn)
        except Exception as exc:
            await self._release_quietly(conn)
            self.logger.error(f"[{self.name}] Failed to begin transaction: {_reason(exc)}")
            raise TransactionFailedFault(
                self.name, self.backend_type, _reason(exc), operation="begin", cause=exc
            ) from exc
        self.logger.debug(f"[{self.name}] Transaction started")
        return Transaction(self, conn, state)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Commit on clean exit, roll back on exception."""
        txn = await self.begin_transaction()
        async with txn:
            yield txn

    # ── Diagnostics ──────────────────────────────────────────────────

    async def test_connection(self) -> bool:
        """``SELECT 1 AS test`` round-trip. Never raises."""
        try:
            result = await self.query("SELECT 1 AS test")
        except Exception as exc:
            self.logger.warning(f"[{self.name}] Connection test failed: {_reason(exc)}")
            return False
        row = result.first()
        return result.row_count == 1 and row is not None and row.get("test") == 1

    def get_stats(self) -> ConnectionStats:
        if not self.is_connected:
            return ConnectionStats()
        counters = self._pool_counters()
        if counters is None:
            total = max(self.config.pool.min, 1)
            return ConnectionStats(active=0, idle=total, total=total, waiting=0)
        total, idle = counters
        return ConnectionStats(active=max(total - idle, 0), idle=idle, total=total, waiting=0)

    async def server_info(self) -> Dict[str, Any]:
        """Server version and current server time."""
        result = await self.query(self.server_info_sql)
        return result.first() or {}

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"<{self.__class__.__name__} {self.name!r} {self._target()} {state}>"
