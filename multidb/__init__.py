"""
multidb - async multi-backend SQL connection manager

One registry presenting SQL Server, MySQL and PostgreSQL behind a single
capability interface:
- Registry: named databases with lazy, single-flight connects
- Connections: query / execute / begin_transaction on every engine
- Parameters: ``@name`` and ``:name`` markers on every backend
- Results: ``rows`` / ``row_count`` / ``fields`` regardless of driver
- Faults: structured, kind-tagged errors
- Config: typed configuration from the environment and .env files
- Health: aggregate and per-database health reports
"""

__version__ = "0.1.0"

from .config import (
    BackendType,
    DatabaseConfig,
    EnvironmentLoader,
    PoolConfig,
    load_from_environment,
)
from .db import (
    BackendConnection,
    ConnectionStats,
    DatabaseManager,
    FieldInfo,
    MSSQLConnection,
    MySQLConnection,
    PostgresConnection,
    QueryResult,
    Transaction,
    create_connection,
    translate,
)
from .faults import (
    ConfigFault,
    ConfigInvalidFault,
    ConfigMissingFault,
    ConnectionFailedFault,
    DatabaseErrorKind,
    DatabaseFault,
    DisabledFault,
    Fault,
    NotConfiguredFault,
    QueryFailedFault,
    TransactionFailedFault,
)
from .health import check_all, check_database

__all__ = [
    "__version__",
    # Config
    "BackendType",
    "DatabaseConfig",
    "PoolConfig",
    "EnvironmentLoader",
    "load_from_environment",
    # Registry & connections
    "DatabaseManager",
    "BackendConnection",
    "MSSQLConnection",
    "MySQLConnection",
    "PostgresConnection",
    "create_connection",
    "Transaction",
    "translate",
    # Results
    "QueryResult",
    "FieldInfo",
    "ConnectionStats",
    # Faults
    "Fault",
    "ConfigFault",
    "ConfigMissingFault",
    "ConfigInvalidFault",
    "DatabaseErrorKind",
    "DatabaseFault",
    "NotConfiguredFault",
    "DisabledFault",
    "ConnectionFailedFault",
    "QueryFailedFault",
    "TransactionFailedFault",
    # Health
    "check_all",
    "check_database",
]
