"""
multidb DB Backend — PostgreSQL connection via asyncpg.

Requires asyncpg:
    pip install asyncpg
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple

from ...config import BackendType
from ..results import QueryResult, from_postgres
from .base import BackendConnection

__all__ = ["PostgresConnection"]

# Try importing async postgres driver
try:
    import asyncpg
except ImportError:
    asyncpg = None  # type: ignore


class PostgresConnection(BackendConnection):
    """
    PostgreSQL connection using asyncpg with connection pooling.

    - ``numeric`` parameters (``$1, $2, ...``)
    - Functions via ``SELECT * FROM fn($1, ...)``
    - Transactions with a dedicated connection and ``conn.transaction()``
    - ``options["statement_timeout"]`` is sent as a server setting

    Requires:
        pip install asyncpg
    """

    backend_type = BackendType.POSTGRESQL
    param_style = "numeric"
    driver_name = "asyncpg"
    install_hint = "pip install multidb[postgres]"
    server_info_sql = "SELECT version() AS version, NOW() AS server_time"

    def _driver_available(self) -> bool:
        return asyncpg is not None

    def _ssl_mode(self) -> Optional[str]:
        if not self.config.encrypt:
            return None
        return "require" if self.config.trust_server_certificate else "verify-full"

    async def _create_pool(self) -> Any:
        cfg = self.config
        server_settings = {}
        if cfg.options.get("statement_timeout"):
            server_settings["statement_timeout"] = str(cfg.options["statement_timeout"])
        if cfg.options.get("application_name"):
            server_settings["application_name"] = str(cfg.options["application_name"])

        return await asyncpg.create_pool(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user or None,
            password=cfg.password or None,
            database=cfg.database,
            min_size=cfg.pool.min,
            max_size=cfg.pool.max,
            max_inactive_connection_lifetime=cfg.pool.idle_timeout,
            timeout=cfg.pool.connect_timeout,
            ssl=self._ssl_mode(),
            server_settings=server_settings or None,
        )

    async def _probe(self, pool: Any) -> None:
        await pool.fetchval("SELECT 1")

    async def _close_pool(self, pool: Any) -> None:
        await pool.close()

    async def _close_connection(self, conn: Any) -> None:
        # Abort without waiting on a statement that may still be running
        conn.terminate()

    async def _run_on(self, conn: Any, sql: str, values: Sequence[Any]) -> QueryResult:
        stmt = await conn.prepare(sql)
        records = await stmt.fetch(*values)
        return from_postgres(records, stmt.get_statusmsg(), stmt.get_attributes())

    # ── Transactions ─────────────────────────────────────────────────

    async def _begin(self, conn: Any) -> Any:
        txn = conn.transaction()
        await txn.start()
        return txn

    async def _commit(self, conn: Any, state: Any) -> None:
        await state.commit()

    async def _rollback(self, conn: Any, state: Any) -> None:
        await state.rollback()

    # ── Routines ─────────────────────────────────────────────────────

    def _routine_sql(self, routine: str, params: Optional[Mapping[str, Any] | Sequence[Any]]) -> Tuple[str, Sequence[Any]]:
        if isinstance(params, Mapping):
            values = tuple(params.values())
        else:
            values = tuple(params or ())
        placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
        return f"SELECT * FROM {routine}({placeholders})", values

    def _pool_counters(self) -> Optional[Tuple[int, int]]:
        return self._pool.get_size(), self._pool.get_idle_size()
