"""
multidb DB Backend — SQL Server connection via aioodbc.

Requires aioodbc and an ODBC driver for SQL Server:
    pip install aioodbc
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple

from ...config import BackendType
from ..results import QueryResult, from_mssql
from .base import BackendConnection

__all__ = ["MSSQLConnection"]

# Try importing async ODBC driver
try:
    import aioodbc
except ImportError:
    aioodbc = None  # type: ignore

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


def _odbc_value(value: Any) -> str:
    """Brace-quote a connection string value when it holds separators."""
    text = str(value)
    if any(ch in text for ch in ";{}=") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


def _mask_dsn(dsn: str) -> str:
    """Mask the PWD attribute of an ODBC connection string for logging."""
    parts = []
    for part in dsn.split(";"):
        if part.upper().startswith("PWD="):
            part = "PWD=***"
        parts.append(part)
    return ";".join(parts)


class MSSQLConnection(BackendConnection):
    """
    SQL Server connection using an aioodbc pool.

    - ``qmark`` parameters (``?``)
    - Stored procedures via ``EXEC``
    - Explicit ``BEGIN TRANSACTION`` on a dedicated connection
    - ``pool.idle_timeout`` becomes aioodbc's ``pool_recycle``

    Requires:
        pip install aioodbc
    """

    backend_type = BackendType.MSSQL
    param_style = "qmark"
    driver_name = "aioodbc"
    install_hint = "pip install multidb[mssql]"
    server_info_sql = "SELECT @@VERSION AS version, GETDATE() AS server_time"

    def _driver_available(self) -> bool:
        return aioodbc is not None

    def build_dsn(self) -> str:
        cfg = self.config
        parts = [
            ("DRIVER", "{" + cfg.options.get("odbc_driver", DEFAULT_ODBC_DRIVER) + "}"),
            ("SERVER", f"{cfg.host},{cfg.port}"),
            ("DATABASE", _odbc_value(cfg.database)),
        ]
        if cfg.user:
            parts.append(("UID", _odbc_value(cfg.user)))
            parts.append(("PWD", _odbc_value(cfg.password)))
        else:
            parts.append(("Trusted_Connection", "yes"))
        parts.append(("Encrypt", "yes" if cfg.encrypt else "no"))
        parts.append(("TrustServerCertificate", "yes" if cfg.trust_server_certificate else "no"))
        return ";".join(f"{key}={value}" for key, value in parts)

    async def _create_pool(self) -> Any:
        dsn = self.build_dsn()
        self.logger.debug(f"[{self.name}] Creating pool: {_mask_dsn(dsn)}")
        pool = self.config.pool
        return await aioodbc.create_pool(
            dsn=dsn,
            minsize=pool.min,
            maxsize=pool.max,
            pool_recycle=int(pool.idle_timeout),
            autocommit=True,
            timeout=int(pool.connect_timeout),
        )

    async def _probe(self, pool: Any) -> None:
        conn = await pool.acquire()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchall()
        finally:
            await pool.release(conn)

    async def _close_pool(self, pool: Any) -> None:
        pool.close()
        await pool.wait_closed()

    async def _close_connection(self, conn: Any) -> None:
        await conn.close()

    async def _run_on(self, conn: Any, sql: str, values: Sequence[Any]) -> QueryResult:
        async with conn.cursor() as cur:
            await cur.execute(sql, *values)
            rowcount = cur.rowcount
            # Row counts of earlier statements in a batch come first
            while cur.description is None and await cur.nextset():
                pass
            if cur.description is None:
                return from_mssql(None, None, rowcount)
            rows = await cur.fetchall()
            return from_mssql(cur.description, rows, cur.rowcount)

    # ── Transactions ─────────────────────────────────────────────────

    async def _begin(self, conn: Any) -> None:
        async with conn.cursor() as cur:
            await cur.execute("BEGIN TRANSACTION")

    async def _commit(self, conn: Any, state: Any) -> None:
        async with conn.cursor() as cur:
            await cur.execute("COMMIT TRANSACTION")

    async def _rollback(self, conn: Any, state: Any) -> None:
        async with conn.cursor() as cur:
            await cur.execute("IF @@TRANCOUNT > 0 ROLLBACK TRANSACTION")

    # ── Routines ─────────────────────────────────────────────────────

    def _routine_sql(self, routine: str, params: Optional[Mapping[str, Any] | Sequence[Any]]) -> Tuple[str, Sequence[Any]]:
        if not params:
            return f"EXEC {routine}", ()
        if isinstance(params, Mapping):
            names = [str(key).lstrip("@:") for key in params]
            args = ", ".join(f"@{name} = ?" for name in names)
            return f"EXEC {routine} {args}", tuple(params.values())
        values = tuple(params)
        return f"EXEC {routine} " + ", ".join("?" for _ in values), values

    def _pool_counters(self) -> Optional[Tuple[int, int]]:
        return self._pool.size, self._pool.freesize
