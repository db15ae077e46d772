"""
In-memory stand-ins for the aioodbc, aiomysql and asyncpg pool APIs.

All three share one ``FakeServer`` that records every statement and
decides what each statement returns, so tests can script replies and
failures without a database.
"""

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from multidb.config import BackendType, DatabaseConfig, PoolConfig


@dataclass
class Reply:
    columns: Optional[List[str]] = None
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    rowcount: int = 0
    status: str = ""


class FakeServer:
    """Scripted database shared by every fake pool created in a test."""

    def __init__(self):
        self.log: List[Tuple[Any, str, Any]] = []
        self.replies: Dict[str, Reply] = {}
        self.failures: Dict[str, Exception] = {}
        self.connect_error: Optional[Exception] = None
        self.liveness_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.connect_delay = 0.0
        self.query_delay = 0.0
        self.pools: List["_Pool"] = []
        self.pool_kwargs: List[Dict[str, Any]] = []

    def statements(self) -> List[str]:
        return [sql for _, sql, _ in self.log]

    async def run(self, conn: Any, sql: str, params: Any) -> Reply:
        self.log.append((conn, sql, params))
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        for pattern, exc in self.failures.items():
            if pattern in sql:
                raise exc
        if sql in self.replies:
            return self.replies[sql]
        upper = sql.upper()
        if "SELECT 1 AS TEST" in upper:
            return Reply(["test"], [(1,)], 1, "SELECT 1")
        if upper.strip() == "SELECT 1":
            return Reply(["?column?"], [(1,)], 1, "SELECT 1")
        if "VERSION()" in upper or "@@VERSION" in upper:
            return Reply(["version", "server_time"], [("FakeSQL 1.0", "2024-01-01 00:00:00")], 1, "SELECT 1")
        return Reply(None, [], 1, "INSERT 0 1")

    async def create(self, pool_cls, minsize: int, maxsize: int, **kwargs) -> "_Pool":
        self.pool_kwargs.append(kwargs)
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        pool = pool_cls(self, minsize, maxsize)
        self.pools.append(pool)
        return pool


class _Pool:
    """Bounded pool: ``acquire`` waits while ``maxsize`` connections are out."""

    connection_cls: type = object

    def __init__(self, server: FakeServer, minsize: int, maxsize: int):
        self.server = server
        self.minsize = minsize
        self.maxsize = maxsize
        self._free = [self.connection_cls(server) for _ in range(minsize)]
        self._used: set = set()
        self._cond = asyncio.Condition()
        self.closed = False

    @property
    def in_use(self) -> int:
        return len(self._used)

    async def _acquire(self):
        async with self._cond:
            while not self._free and len(self._free) + len(self._used) >= self.maxsize:
                await self._cond.wait()
            conn = self._free.pop() if self._free else self.connection_cls(self.server)
            self._used.add(conn)
            return conn

    async def _release(self, conn):
        async with self._cond:
            self._used.discard(conn)
            if not conn.closed:
                self._free.append(conn)
            self._cond.notify()

    async def _close(self):
        if self.server.close_error is not None:
            raise self.server.close_error
        self.closed = True


# ── aioodbc ──────────────────────────────────────────────────────────

class _OdbcCursor:
    def __init__(self, conn):
        self._conn = conn
        self.description = None
        self.rowcount = -1
        self._rows: List[Tuple[Any, ...]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, *params):
        if sql == "SELECT 1" and self._conn.server.liveness_error is not None:
            raise self._conn.server.liveness_error
        reply = await self._conn.server.run(self._conn, sql, params)
        if reply.columns is None:
            self.description = None
            self.rowcount = reply.rowcount
            self._rows = []
        else:
            self.description = tuple((name, int, None, None, None, None, True) for name in reply.columns)
            self.rowcount = -1
            self._rows = list(reply.rows)

    async def fetchall(self):
        return list(self._rows)

    async def nextset(self):
        return False


class _OdbcConnection:
    def __init__(self, server):
        self.server = server
        self.closed = False

    def cursor(self):
        return _OdbcCursor(self)

    async def close(self):
        self.closed = True


class _OdbcPool(_Pool):
    connection_cls = _OdbcConnection

    @property
    def size(self):
        return len(self._free) + len(self._used)

    @property
    def freesize(self):
        return len(self._free)

    async def acquire(self):
        return await self._acquire()

    async def release(self, conn):
        await self._release(conn)

    def close(self):
        self.closing = True

    async def wait_closed(self):
        await self._close()


class FakeAioodbc:
    def __init__(self, server: FakeServer):
        self.server = server

    async def create_pool(self, dsn, minsize=10, maxsize=10, **kwargs):
        return await self.server.create(_OdbcPool, minsize, maxsize, dsn=dsn, **kwargs)


# ── aiomysql ─────────────────────────────────────────────────────────

class DictCursor:
    """Marker class, like ``aiomysql.DictCursor``."""


class _MySQLCursor:
    def __init__(self, conn, cursor_cls):
        assert cursor_cls is DictCursor
        self._conn = conn
        self.description = None
        self.rowcount = 0
        self._rows: List[Dict[str, Any]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, args=None):
        reply = await self._conn.server.run(self._conn, sql, args)
        if reply.columns is None:
            self.description = None
            self.rowcount = reply.rowcount
            self._rows = []
        else:
            self.description = tuple((name, 253, None, None, None, None, True) for name in reply.columns)
            self._rows = [dict(zip(reply.columns, row)) for row in reply.rows]
            self.rowcount = len(self._rows)

    async def fetchall(self):
        return tuple(self._rows)


class _MySQLConnection:
    def __init__(self, server):
        self.server = server
        self.closed = False

    def cursor(self, cursor_cls=None):
        return _MySQLCursor(self, cursor_cls)

    async def ping(self, reconnect=True):
        if self.server.liveness_error is not None:
            raise self.server.liveness_error

    async def begin(self):
        await self.server.run(self, "BEGIN", None)

    async def commit(self):
        await self.server.run(self, "COMMIT", None)

    async def rollback(self):
        await self.server.run(self, "ROLLBACK", None)

    def close(self):
        self.closed = True


class _MySQLPool(_OdbcPool):
    connection_cls = _MySQLConnection


class FakeAiomysql:
    DictCursor = DictCursor

    def __init__(self, server: FakeServer):
        self.server = server

    async def create_pool(self, minsize=1, maxsize=10, **kwargs):
        return await self.server.create(_MySQLPool, minsize, maxsize, **kwargs)


# ── asyncpg ──────────────────────────────────────────────────────────

class _PgStatement:
    def __init__(self, conn, sql):
        self._conn = conn
        self._sql = sql
        self._reply: Optional[Reply] = None

    async def fetch(self, *args):
        self._reply = await self._conn.server.run(self._conn, self._sql, args)
        if self._reply.columns is None:
            return []
        return [dict(zip(self._reply.columns, row)) for row in self._reply.rows]

    def get_statusmsg(self):
        return self._reply.status if self._reply else ""

    def get_attributes(self):
        if self._reply is None or self._reply.columns is None:
            return ()
        return tuple(
            SimpleNamespace(name=name, type=SimpleNamespace(name="int4"))
            for name in self._reply.columns
        )


class _PgTransaction:
    def __init__(self, conn):
        self._conn = conn

    async def start(self):
        await self._conn.server.run(self._conn, "BEGIN", None)

    async def commit(self):
        await self._conn.server.run(self._conn, "COMMIT", None)

    async def rollback(self):
        await self._conn.server.run(self._conn, "ROLLBACK", None)


class _PgConnection:
    def __init__(self, server):
        self.server = server
        self.closed = False

    async def prepare(self, sql):
        return _PgStatement(self, sql)

    def transaction(self):
        return _PgTransaction(self)

    def terminate(self):
        self.closed = True


class _PgPool(_Pool):
    connection_cls = _PgConnection

    def get_size(self):
        return len(self._free) + len(self._used)

    def get_idle_size(self):
        return len(self._free)

    async def acquire(self):
        return await self._acquire()

    async def release(self, conn):
        await self._release(conn)

    async def close(self):
        await self._close()

    async def fetchval(self, sql):
        if self.server.liveness_error is not None:
            raise self.server.liveness_error
        return 1


class FakeAsyncpg:
    def __init__(self, server: FakeServer):
        self.server = server

    async def create_pool(self, min_size=10, max_size=10, **kwargs):
        return await self.server.create(_PgPool, min_size, max_size, **kwargs)


def install(monkeypatch, server: FakeServer) -> FakeServer:
    """Swap the driver modules used by the backends for fakes bound to ``server``."""
    import multidb.db.backends.mssql as mssql_backend
    import multidb.db.backends.mysql as mysql_backend
    import multidb.db.backends.postgres as postgres_backend

    monkeypatch.setattr(mssql_backend, "aioodbc", FakeAioodbc(server))
    monkeypatch.setattr(mysql_backend, "aiomysql", FakeAiomysql(server))
    monkeypatch.setattr(postgres_backend, "asyncpg", FakeAsyncpg(server))
    return server


# ── Config helpers ───────────────────────────────────────────────────

ALL_BACKENDS = [BackendType.MSSQL, BackendType.MYSQL, BackendType.POSTGRESQL]


def make_config(
    name: str = "primary",
    backend: BackendType = BackendType.POSTGRESQL,
    **overrides,
) -> DatabaseConfig:
    """Build a DatabaseConfig with test-friendly defaults."""
    pool = overrides.pop("pool", None) or PoolConfig(
        min=0, max=2, connect_timeout=1.0, acquire_timeout=1.0
    )
    return DatabaseConfig(
        name=name,
        backend=backend,
        host=overrides.pop("host", "db.test"),
        database=overrides.pop("database", "app"),
        user=overrides.pop("user", "svc"),
        password=overrides.pop("password", "s3cret"),
        pool=pool,
        **overrides,
    )
