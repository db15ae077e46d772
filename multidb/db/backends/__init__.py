"""
multidb DB Backends Package — one connection class per SQL engine.

- SQL Server (via aioodbc)
- MySQL / MariaDB (via aiomysql)
- PostgreSQL (via asyncpg)
"""

from typing import Dict, Type

from ...config import BackendType, DatabaseConfig
from .base import BackendConnection
from .mssql import MSSQLConnection
from .mysql import MySQLConnection
from .postgres import PostgresConnection

__all__ = [
    "BackendConnection",
    "MSSQLConnection",
    "MySQLConnection",
    "PostgresConnection",
    "BACKENDS",
    "create_connection",
]

BACKENDS: Dict[BackendType, Type[BackendConnection]] = {
    BackendType.MSSQL: MSSQLConnection,
    BackendType.MYSQL: MySQLConnection,
    BackendType.POSTGRESQL: PostgresConnection,
}


def create_connection(config: DatabaseConfig) -> BackendConnection:
    """Build the (unconnected) variant matching ``config.backend``."""
    return BACKENDS[config.backend](config)
