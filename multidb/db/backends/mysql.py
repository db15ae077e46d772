"""
multidb DB Backend — MySQL / MariaDB connection via aiomysql.

Requires aiomysql:
    pip install aiomysql
"""

from __future__ import annotations

import ssl
from typing import Any, Mapping, Optional, Sequence, Tuple

from ...config import BackendType
from ..results import QueryResult, from_mysql
from .base import BackendConnection

__all__ = ["MySQLConnection"]

# Try importing async MySQL driver
try:
    import aiomysql
except ImportError:
    aiomysql = None  # type: ignore


class MySQLConnection(BackendConnection):
    """
    MySQL / MariaDB connection using an aiomysql pool.

    - ``format`` parameters (``%s``), literal ``%`` doubled
    - Stored procedures via ``CALL``
    - Rows fetched with ``DictCursor``
    - Autocommit outside of explicit transactions

    Requires:
        pip install aiomysql
    """

    backend_type = BackendType.MYSQL
    param_style = "format"
    driver_name = "aiomysql"
    install_hint = "pip install multidb[mysql]"
    server_info_sql = "SELECT VERSION() AS version, NOW() AS server_time"

    def _driver_available(self) -> bool:
        return aiomysql is not None

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.config.encrypt:
            return None
        context = ssl.create_default_context()
        if self.config.trust_server_certificate:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def _create_pool(self) -> Any:
        cfg = self.config
        return await aiomysql.create_pool(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user,
            password=cfg.password,
            db=cfg.database,
            minsize=cfg.pool.min,
            maxsize=cfg.pool.max,
            pool_recycle=int(cfg.pool.idle_timeout),
            connect_timeout=cfg.pool.connect_timeout,
            charset=cfg.options.get("charset", "utf8mb4"),
            autocommit=True,
            ssl=self._ssl_context(),
        )

    async def _probe(self, pool: Any) -> None:
        conn = await pool.acquire()
        try:
            await conn.ping(reconnect=False)
        finally:
            await pool.release(conn)

    async def _close_pool(self, pool: Any) -> None:
        pool.close()
        await pool.wait_closed()

    async def _close_connection(self, conn: Any) -> None:
        conn.close()

    async def _run_on(self, conn: Any, sql: str, values: Sequence[Any]) -> QueryResult:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute(sql, tuple(values))
            rows = await cur.fetchall() if cur.description else None
            return from_mysql(rows, cur.description, cur.rowcount)

    # ── Transactions ─────────────────────────────────────────────────

    async def _begin(self, conn: Any) -> None:
        await conn.begin()

    async def _commit(self, conn: Any, state: Any) -> None:
        await conn.commit()

    async def _rollback(self, conn: Any, state: Any) -> None:
        await conn.rollback()

    # ── Routines ─────────────────────────────────────────────────────

    def _routine_sql(self, routine: str, params: Optional[Mapping[str, Any] | Sequence[Any]]) -> Tuple[str, Sequence[Any]]:
        if isinstance(params, Mapping):
            values = tuple(params.values())
        else:
            values = tuple(params or ())
        placeholders = ", ".join("%s" for _ in values)
        return f"CALL {routine}({placeholders})", values

    def _pool_counters(self) -> Optional[Tuple[int, int]]:
        return self._pool.size, self._pool.freesize
