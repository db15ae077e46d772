"""
multidb DB — async multi-backend connection management.

Provides:
- DatabaseManager: named registry with lazy, single-flight connects
- BackendConnection variants for SQL Server, MySQL and PostgreSQL
- Transaction: dedicated-session transaction handle
- Named parameter translation and result normalization
"""

from .backends import (
    BACKENDS,
    BackendConnection,
    MSSQLConnection,
    MySQLConnection,
    PostgresConnection,
    create_connection,
)
from .params import TranslatedQuery, count_placeholders, find_placeholders, translate
from .registry import DatabaseManager
from .results import (
    ConnectionStats,
    FieldInfo,
    QueryResult,
    from_mssql,
    from_mysql,
    from_postgres,
)
from .transaction import Transaction

__all__ = [
    # Registry
    "DatabaseManager",
    # Connections
    "BACKENDS",
    "BackendConnection",
    "MSSQLConnection",
    "MySQLConnection",
    "PostgresConnection",
    "create_connection",
    "Transaction",
    # Parameters
    "TranslatedQuery",
    "translate",
    "find_placeholders",
    "count_placeholders",
    # Results
    "QueryResult",
    "FieldInfo",
    "ConnectionStats",
    "from_mssql",
    "from_mysql",
    "from_postgres",
]
