"""
multidb DB — Connection registry.

``DatabaseManager`` maps logical names to configurations and, once used,
to live connections.  Connections are opened lazily on the first ``get``;
concurrent first calls for one name share a single connect attempt.

Construct one manager at process start and pass it to whatever needs it:

    manager = DatabaseManager.from_environment(env_file=".env")
    db = await manager.get("intelligent")
    result = await db.query("SELECT * FROM clients WHERE id = @id", {"id": 7})
    ...
    await manager.on_shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from ..config import DatabaseConfig, load_from_environment
from ..faults import (
    ConnectionFailedFault,
    DisabledFault,
    NotConfiguredFault,
)
from .backends import BackendConnection, create_connection
from .results import ConnectionStats

logger = logging.getLogger("multidb.db.registry")

__all__ = ["DatabaseManager"]


class DatabaseManager:
    """
    Registry of named database connections.

    The manager is the only writer of its maps; connections are owned by it
    and closed through ``disconnect`` / ``disconnect_all``.
    """

    def __init__(self, configs: Optional[Iterable[DatabaseConfig]] = None):
        self._configs: Dict[str, DatabaseConfig] = {}
        self._connections: Dict[str, BackendConnection] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        if configs:
            self.register_many(configs)

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None,
    ) -> "DatabaseManager":
        """Registry populated from environment keys (and an optional .env file)."""
        manager = cls()
        manager.register_many(load_from_environment(environ, env_file=env_file))
        return manager

    # ── Registration ─────────────────────────────────────────────────

    def register(self, config: DatabaseConfig) -> None:
        """Store ``config`` under its name, replacing any previous one. No I/O."""
        if not isinstance(config, DatabaseConfig):
            raise TypeError(f"Expected DatabaseConfig, got {type(config).__name__}")

        name = config.name
        if name in self._configs:
            logger.warning(f"[{name}] Overwriting existing database configuration")
            if name in self._connections:
                logger.info(f"[{name}] Still connected; new configuration applies after disconnect")
        self._configs[name] = config
        logger.info(
            f"[{name}] Registered {config.backend.value} database "
            f"{config.host}:{config.port}/{config.database}"
            + ("" if config.enabled else " (disabled)")
        )

    def register_many(self, configs: Iterable[DatabaseConfig]) -> None:
        for config in configs:
            self.register(config)

    def _require_config(self, name: str) -> DatabaseConfig:
        config = self._configs.get(name)
        if config is None:
            raise NotConfiguredFault(name, available=self.list_registered())
        if not config.enabled:
            raise DisabledFault(name, config.backend)
        return config

    # ── Connections ──────────────────────────────────────────────────

    async def get(self, name: str) -> BackendConnection:
        """
        Return the live connection for ``name``, connecting on first use.

        Raises:
            NotConfiguredFault: nothing registered under ``name``
            DisabledFault: registered but ``enabled=False``
            ConnectionFailedFault: the connect attempt failed (not cached)
        """
        conn = self._connections.get(name)
        if conn is not None:
            return conn

        config = self._require_config(name)
        task = self._pending.get(name)
        if task is None or task.done():
            task = asyncio.ensure_future(self._open(config))
            self._pending[name] = task
            task.add_done_callback(lambda t: self._forget_pending(name, t))
        return await asyncio.shield(task)

    def _forget_pending(self, name: str, task: asyncio.Future) -> None:
        if self._pending.get(name) is task:
            del self._pending[name]
        # Mark the outcome as observed when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _open(self, config: DatabaseConfig) -> BackendConnection:
        conn = create_connection(config)
        await conn.connect()
        self._connections[config.name] = conn
        return conn

    def create_unconnected(self, name: str) -> BackendConnection:
        """A fresh, unconnected and unstored connection for ``name`` (diagnostics)."""
        config = self._configs.get(name)
        if config is None:
            raise NotConfiguredFault(name, available=self.list_registered())
        return create_connection(config)

    def has(self, name: str) -> bool:
        return name in self._configs

    def is_connected(self, name: str) -> bool:
        return name in self._connections

    def list_registered(self) -> List[str]:
        return list(self._configs)

    def list_connected(self) -> List[str]:
        return list(self._connections)

    def get_config(self, name: str) -> Optional[DatabaseConfig]:
        return self._configs.get(name)

    # ── Health ───────────────────────────────────────────────────────

    async def test_connection(self, name: str) -> bool:
        """Connect if needed and run a probe query. Never raises."""
        try:
            conn = await self.get(name)
        except Exception as exc:
            logger.warning(f"[{name}] Connection test failed: {exc}")
            return False
        return await conn.test_connection()

    async def test_all_connections(self) -> Dict[str, bool]:
        """Probe every registered database; disabled ones report False untouched."""
        names = self.list_registered()
        enabled = [name for name in names if self._configs[name].enabled]
        outcomes = await asyncio.gather(*(self.test_connection(name) for name in enabled))
        results = dict(zip(enabled, outcomes))
        return {name: results.get(name, False) for name in names}

    def get_stats(self) -> Dict[str, ConnectionStats]:
        return {name: conn.get_stats() for name, conn in self._connections.items()}

    # ── Teardown ─────────────────────────────────────────────────────

    async def _settle_pending(self, names: Iterable[str]) -> None:
        """Wait for in-flight connects so their pools are stored before closing."""
        tasks = [self._pending[name] for name in names if name in self._pending]
        if tasks:
            await asyncio.wait(tasks)

    async def disconnect(self, name: str) -> None:
        """Close and forget the connection for ``name``; no-op if not connected."""
        await self._settle_pending([name])
        conn = self._connections.pop(name, None)
        if conn is None:
            return
        await conn.disconnect()

    async def disconnect_all(self) -> None:
        """
        Close every connection, including ones still connecting, even if some fail.

        Raises:
            ConnectionFailedFault: the first close failure, after all were tried
        """
        await self._settle_pending(list(self._pending))
        connections = list(self._connections.items())
        self._connections.clear()
        first_error: Optional[BaseException] = None
        for name, conn in connections:
            try:
                await conn.disconnect()
            except Exception as exc:
                logger.error(f"[{name}] Disconnect failed: {exc}")
                if first_error is None:
                    first_error = exc
        if first_error is None:
            logger.info(f"Closed {len(connections)} database connection(s)")
            return
        if isinstance(first_error, ConnectionFailedFault):
            raise first_error
        raise ConnectionFailedFault(
            getattr(first_error, "database", "<all>"),
            reason=f"disconnect failed: {first_error}",
            cause=first_error,
        ) from first_error

    # ── Lifecycle hooks ──────────────────────────────────────────────

    async def on_startup(self) -> None:
        """Connections open lazily; this only reports what is registered."""
        logger.info(f"Database manager ready: {', '.join(self.list_registered()) or 'no databases'}")

    async def on_shutdown(self) -> None:
        await self.disconnect_all()

    def __repr__(self) -> str:
        return (
            f"<DatabaseManager registered={self.list_registered()} "
            f"connected={self.list_connected()}>"
        )
