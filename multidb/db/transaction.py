"""
multidb DB — Transaction handle.

A ``Transaction`` owns one connection checked out of its backend's pool
for its whole lifetime.  Statements on it are serialized; ``commit`` or
``rollback`` ends it and always returns the connection to the pool, even
when the driver call fails.

Usage:
    txn = await db.begin_transaction()
    try:
        await txn.query("INSERT INTO audit (msg) VALUES (@msg)", {"msg": "hi"})
        await txn.commit()
    except Exception:
        await txn.rollback()
        raise

    # or
    async with db.transaction() as txn:
        await txn.query(...)
"""

from __future__ import annotations

import asyncio
import logging
import warnings
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from ..faults import QueryFailedFault, TransactionFailedFault
from .results import QueryResult

if TYPE_CHECKING:
    from .backends.base import BackendConnection

logger = logging.getLogger("multidb.db.transaction")

__all__ = ["Transaction"]


class Transaction:
    """Dedicated-session transaction on one backend connection."""

    def __init__(self, backend: "BackendConnection", conn: Any, state: Any = None):
        self._backend = backend
        self._conn = conn
        self._state = state
        self._active = True
        self._broken = False
        self._lock = asyncio.Lock()

    @property
    def database(self) -> str:
        return self._backend.name

    @property
    def is_active(self) -> bool:
        return self._active

    def _finished(self, operation: str) -> TransactionFailedFault:
        return TransactionFailedFault(
            self._backend.name,
            self._backend.backend_type,
            "transaction already finished",
            operation=operation,
        )

    async def query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any] | Sequence[Any]] = None,
    ) -> QueryResult:
        """Run a statement inside the transaction. Failures leave it active."""
        async with self._lock:
            if not self._active:
                raise self._finished("query")
            native_sql, values = self._backend._prepare(sql, params)
            try:
                return await self._backend.run_on(self._conn, native_sql, values, source_sql=sql)
            except QueryFailedFault as exc:
                if isinstance(exc.cause, asyncio.TimeoutError):
                    self._broken = True
                raise
            except asyncio.CancelledError:
                self._broken = True
                raise

    async def commit(self) -> None:
        await self._finish("commit", self._backend._commit)

    async def rollback(self) -> None:
        await self._finish("rollback", self._backend._rollback)

    async def _finish(self, operation: str, action) -> None:
        async with self._lock:
            if not self._active:
                raise self._finished(operation)
            self._active = False
            conn, state = self._conn, self._state
            self._conn = self._state = None

            if self._broken:
                # Closing the session makes the server roll the work back
                await self._backend._discard(conn)
                if operation == "commit":
                    logger.error(f"[{self.database}] Transaction commit refused after a timed-out statement")
                    raise TransactionFailedFault(
                        self._backend.name,
                        self._backend.backend_type,
                        "a statement timed out; the connection was dropped and the work rolled back",
                        operation=operation,
                    )
                logger.debug(f"[{self.database}] Transaction rolled back by dropping its connection")
                return

            reusable = False
            try:
                await action(conn, state)
                reusable = True
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                logger.error(f"[{self.database}] Transaction {operation} failed: {reason}")
                raise TransactionFailedFault(
                    self._backend.name,
                    self._backend.backend_type,
                    reason,
                    operation=operation,
                    cause=exc,
                ) from exc
            finally:
                # A session whose commit/rollback failed may still hold an open transaction
                if reusable:
                    await self._backend._release_quietly(conn)
                else:
                    await self._backend._discard(conn)
            logger.debug(f"[{self.database}] Transaction {operation} complete")

    async def __aenter__(self) -> "Transaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._active:
            return
        if exc_type is None:
            await self.commit()
            return
        try:
            await self.rollback()
        except TransactionFailedFault:
            # Already logged; the caller's exception is the one to see
            pass

    def __del__(self):
        if getattr(self, "_active", False):
            logger.error(
                f"[{self._backend.name}] Transaction was never committed or rolled back"
            )
            warnings.warn(
                f"Unfinished transaction on database {self._backend.name!r}",
                ResourceWarning,
                stacklevel=2,
            )

    def __repr__(self) -> str:
        state = "active" if self._active else "finished"
        return f"<Transaction {self.database!r} {state}>"
