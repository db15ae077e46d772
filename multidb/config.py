"""
Config system - typed database configuration loaded from environment-style
key/value pairs.

Sources, later overrides earlier:
1. ``.env`` file (read with python-dotenv)
2. Process environment
3. Manual overrides

Two key layouts are understood:

- Generic blocks, one per logical name, nested with double underscores::

      MULTIDB_PRIMARY__TYPE=postgresql
      MULTIDB_PRIMARY__HOST=db.internal
      MULTIDB_PRIMARY__POOL__MAX=20

- The fixed deployment keys (``DB_INTELLIGENT_*``, ``DB_LOGGER_*``, ...) and
  the legacy single-database keys (``DB_*`` and ``MYSQL_*``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import dotenv_values

from .faults import ConfigInvalidFault, ConfigMissingFault

logger = logging.getLogger("multidb.config")

__all__ = [
    "BackendType",
    "PoolConfig",
    "DatabaseConfig",
    "EnvironmentLoader",
    "load_from_environment",
]


class BackendType(str, Enum):
    """Supported SQL engines."""
    MSSQL = "mssql"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"

    @classmethod
    def parse(cls, value: Any) -> "BackendType":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        backend = _BACKEND_ALIASES.get(key)
        if backend is None:
            raise ConfigInvalidFault(
                "type",
                f"unsupported backend type {value!r}; "
                f"expected one of {sorted(b.value for b in cls)}",
            )
        return backend

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_BACKEND_ALIASES = {
    "mssql": BackendType.MSSQL,
    "sqlserver": BackendType.MSSQL,
    "sql_server": BackendType.MSSQL,
    "mysql": BackendType.MYSQL,
    "mariadb": BackendType.MYSQL,
    "postgresql": BackendType.POSTGRESQL,
    "postgres": BackendType.POSTGRESQL,
    "pg": BackendType.POSTGRESQL,
}

_DEFAULT_PORTS = {
    BackendType.MSSQL: 1433,
    BackendType.MYSQL: 3306,
    BackendType.POSTGRESQL: 5432,
}

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0", "")


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigInvalidFault(key, f"expected a boolean, got {value!r}")


def _as_int(key: str, value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigInvalidFault(key, f"expected an integer, got {value!r}", cause=exc) from exc


def _as_float(key: str, value: Any) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigInvalidFault(key, f"expected a number of seconds, got {value!r}", cause=exc) from exc


@dataclass
class PoolConfig:
    """Connection pool bounds and timeouts (seconds)."""

    min: int = 0
    max: int = 10
    idle_timeout: float = 30.0
    connect_timeout: float = 15.0
    acquire_timeout: float = 30.0
    query_timeout: Optional[float] = None

    def __post_init__(self):
        if self.max < 1:
            raise ConfigInvalidFault("pool.max", "must be at least 1")
        if self.min < 0 or self.min > self.max:
            raise ConfigInvalidFault("pool.min", f"must be between 0 and pool.max ({self.max})")
        for name in ("idle_timeout", "connect_timeout", "acquire_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigInvalidFault(f"pool.{name}", "must be positive")
        if self.query_timeout is not None and self.query_timeout <= 0:
            raise ConfigInvalidFault("pool.query_timeout", "must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PoolConfig":
        kwargs: Dict[str, Any] = {}
        if "min" in data:
            kwargs["min"] = _as_int("pool.min", data["min"])
        if "max" in data:
            kwargs["max"] = _as_int("pool.max", data["max"])
        for name in ("idle_timeout", "connect_timeout", "acquire_timeout", "query_timeout"):
            if data.get(name) not in (None, ""):
                kwargs[name] = _as_float(f"pool.{name}", data[name])
        return cls(**kwargs)


@dataclass
class DatabaseConfig:
    """
    Configuration for one logical database.

    ``name`` is the caller-facing key; ``backend`` selects the engine.
    ``options`` carries driver-specific extras (``odbc_driver`` for SQL
    Server, ``charset`` for MySQL, ``statement_timeout`` for PostgreSQL).
    """

    name: str
    backend: BackendType
    host: str = "localhost"
    port: Optional[int] = None
    database: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    enabled: bool = True
    encrypt: bool = False
    trust_server_certificate: bool = False
    pool: PoolConfig = field(default_factory=PoolConfig)
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ConfigMissingFault("name")
        self.backend = BackendType.parse(self.backend)
        if self.port is None:
            self.port = self.backend.default_port
            return
        self.port = _as_int(f"{self.name}.port", self.port)
        if not 0 < self.port < 65536:
            raise ConfigInvalidFault(f"{self.name}.port", "must be between 1 and 65535")

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "DatabaseConfig":
        """
        Build a config from a flat (or ``pool``-nested) mapping of strings.

        ``server`` is accepted as an alias of ``host``; ``pool_min`` /
        ``pool_max`` as aliases of ``pool.min`` / ``pool.max``.
        """
        backend = data.get("type") or data.get("backend")
        if not backend:
            raise ConfigMissingFault(f"{name}.type")

        pool_data = dict(data.get("pool") or {})
        for alias, target in (("pool_min", "min"), ("pool_max", "max")):
            if alias in data:
                pool_data.setdefault(target, data[alias])
        for key in ("idle_timeout", "connect_timeout", "acquire_timeout", "query_timeout"):
            if key in data:
                pool_data.setdefault(key, data[key])

        known = {
            "type", "backend", "host", "server", "port", "database", "user",
            "password", "enabled", "encrypt", "trust_server_certificate",
            "pool", "pool_min", "pool_max", "idle_timeout", "connect_timeout",
            "acquire_timeout", "query_timeout",
        }
        options = {k: v for k, v in data.items() if k not in known}

        port = data.get("port")
        return cls(
            name=name,
            backend=BackendType.parse(backend),
            host=str(data.get("host") or data.get("server") or "localhost"),
            port=_as_int(f"{name}.port", port) if port not in (None, "") else None,
            database=str(data.get("database") or ""),
            user=str(data.get("user") or ""),
            password=str(data.get("password") or ""),
            enabled=_as_bool(f"{name}.enabled", data.get("enabled", True)),
            encrypt=_as_bool(f"{name}.encrypt", data.get("encrypt", False)),
            trust_server_certificate=_as_bool(
                f"{name}.trust_server_certificate",
                data.get("trust_server_certificate", False),
            ),
            pool=PoolConfig.from_dict(pool_data),
            options=options,
        )

    def describe(self) -> Dict[str, Any]:
        """Password-free summary for logs and health reports."""
        return {
            "name": self.name,
            "type": self.backend.value,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "enabled": self.enabled,
            "encrypt": self.encrypt,
            "pool": {"min": self.pool.min, "max": self.pool.max},
        }


# ============================================================================
# Environment loading
# ============================================================================

@dataclass(frozen=True)
class _Preset:
    """A fixed deployment database read from ``<prefix>*`` keys."""

    name: str
    prefix: str
    backend: BackendType
    pool_min: int
    pool_max: int
    fallback: Optional[str] = None
    enabled_by_default: bool = True
    tls_key: str = "ENCRYPT"


_PRESETS: Tuple[_Preset, ...] = (
    _Preset("intelligent", "DB_INTELLIGENT_", BackendType.MSSQL, 2, 10),
    _Preset("logger", "DB_LOGGER_", BackendType.MSSQL, 1, 5, fallback="DB_"),
    _Preset("unity-logger", "DB_UNITY_LOGGER_", BackendType.MSSQL, 1, 5, fallback="DB_INTELLIGENT_"),
    _Preset("mdr", "DB_MDR_", BackendType.MSSQL, 1, 5, fallback="DB_INTELLIGENT_", enabled_by_default=False),
    _Preset("absentee", "DB_ABSENTEE_", BackendType.MYSQL, 2, 8),
    _Preset("engage", "DB_ENGAGE_", BackendType.POSTGRESQL, 2, 10, enabled_by_default=False, tls_key="SSL"),
)

# Legacy single-database layouts, always enabled
_LEGACY: Tuple[_Preset, ...] = (
    _Preset("default", "DB_", BackendType.MSSQL, 0, 10),
    _Preset("mysql", "MYSQL_", BackendType.MYSQL, 0, 10),
)


class EnvironmentLoader:
    """
    Builds ``DatabaseConfig`` objects from environment-style key/value pairs.

    Usage:
        loader = EnvironmentLoader(env_file=".env")
        for config in loader.load():
            manager.register(config)
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        *,
        env_file: Optional[str] = None,
        env_prefix: str = "MULTIDB_",
        overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.env_prefix = env_prefix
        self.values: Dict[str, str] = {}
        if env_file:
            self._load_env_file(env_file)
        self.values.update(os.environ if environ is None else environ)
        self.overrides = overrides or {}

    def _load_env_file(self, path: str):
        """Load key/value pairs from a .env file; missing files are skipped."""
        env_path = Path(path)
        if not env_path.exists():
            logger.debug(f"Env file not found, skipping: {env_path}")
            return
        for key, value in dotenv_values(env_path).items():
            if value is not None:
                self.values[key] = value

    # ── Public API ───────────────────────────────────────────────────

    def load(self) -> List[DatabaseConfig]:
        """
        Return every configuration found, in registration order:
        deployment presets, legacy keys, generic blocks, overrides.

        A later entry with the same name replaces an earlier one when
        registered.
        """
        configs: List[DatabaseConfig] = []
        for preset in _PRESETS:
            config = self._from_preset(preset, legacy=False)
            if config is not None:
                configs.append(config)
        for preset in _LEGACY:
            config = self._from_preset(preset, legacy=True)
            if config is not None:
                configs.append(config)

        blocks = self._generic_blocks()
        for name, data in self.overrides.items():
            self._merge_dict(blocks.setdefault(name, {}), data)
        for name, data in blocks.items():
            configs.append(DatabaseConfig.from_dict(name, data))

        return configs

    # ── Presets ──────────────────────────────────────────────────────

    def _lookup(self, preset: _Preset, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.values.get(f"{preset.prefix}{key}")
        if value in (None, "") and preset.fallback:
            value = self.values.get(f"{preset.fallback}{key}")
        return default if value in (None, "") else value

    def _tls_flag(self, preset: _Preset) -> bool:
        """TLS is on when either the preset or its fallback key says so."""
        prefixes = (preset.prefix, preset.fallback) if preset.fallback else (preset.prefix,)
        return any(
            self.values.get(f"{prefix}{preset.tls_key}", "").lower() == "true"
            for prefix in prefixes
        )

    def _from_preset(self, preset: _Preset, *, legacy: bool) -> Optional[DatabaseConfig]:
        database = self.values.get(f"{preset.prefix}DATABASE")
        if not database:
            return None

        host_key = "SERVER" if preset.backend is BackendType.MSSQL else "HOST"
        if legacy:
            enabled = True
        elif preset.enabled_by_default:
            enabled = self.values.get(f"{preset.prefix}ENABLED", "").lower() != "false"
        else:
            enabled = self.values.get(f"{preset.prefix}ENABLED", "").lower() == "true"

        port = self._lookup(preset, "PORT")
        return DatabaseConfig(
            name=preset.name,
            backend=preset.backend,
            host=self._lookup(preset, host_key, "localhost"),
            port=_as_int(f"{preset.prefix}PORT", port) if port else None,
            database=database,
            user=self._lookup(preset, "USER", ""),
            password=self._lookup(preset, "PASSWORD", ""),
            encrypt=self._tls_flag(preset),
            trust_server_certificate=self._is_development(),
            enabled=enabled,
            pool=PoolConfig(min=preset.pool_min, max=preset.pool_max),
        )

    def _is_development(self) -> bool:
        env = self.values.get("APP_ENV") or self.values.get("NODE_ENV") or ""
        return env.lower() == "development"

    # ── Generic blocks ───────────────────────────────────────────────

    def _generic_blocks(self) -> Dict[str, Dict[str, Any]]:
        """Collect MULTIDB_<NAME>__<KEY>[__<SUBKEY>] into nested dicts."""
        blocks: Dict[str, Dict[str, Any]] = {}
        for key, value in self.values.items():
            if not key.startswith(self.env_prefix):
                continue
            parts = key[len(self.env_prefix):].lower().split("__")
            if len(parts) < 2 or not parts[0]:
                logger.debug(f"Ignoring {key}: expected {self.env_prefix}<NAME>__<KEY>")
                continue
            name = parts[0].replace("_", "-")
            current = blocks.setdefault(name, {})
            for part in parts[1:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = value

        for name, data in blocks.items():
            if "type" not in data and "backend" not in data:
                raise ConfigMissingFault(f"{self.env_prefix}{name.upper().replace('-', '_')}__TYPE")
            data.setdefault("trust_server_certificate", self._is_development())
        return blocks

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value


def load_from_environment(
    environ: Optional[Mapping[str, str]] = None,
    *,
    env_file: Optional[str] = None,
) -> List[DatabaseConfig]:
    """Shortcut for ``EnvironmentLoader(environ, env_file=env_file).load()``."""
    return EnvironmentLoader(environ, env_file=env_file).load()
