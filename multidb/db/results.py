"""
multidb DB — Result normalization.

Each driver hands back rows in its own shape: aioodbc gives tuples plus a
DB-API ``description``, aiomysql's ``DictCursor`` gives dicts, asyncpg gives
``Record`` objects and a command status tag.  The adapters below turn all
three into one ``QueryResult``.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

__all__ = [
    "FieldInfo",
    "QueryResult",
    "ConnectionStats",
    "from_mssql",
    "from_mysql",
    "from_postgres",
]


@dataclass(frozen=True)
class FieldInfo:
    """Column metadata (best effort; drivers expose different detail)."""

    name: str
    type_name: Optional[str] = None
    nullable: Optional[bool] = None


@dataclass
class QueryResult:
    """
    Normalized result of a query or routine call.

    ``row_count`` equals ``len(rows)`` when a rowset came back, otherwise
    it is the affected-row count reported by the server.
    """

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    fields: Optional[List[FieldInfo]] = None

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        row = self.first()
        if not row:
            return None
        return next(iter(row.values()))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "row_count": self.row_count,
            "fields": [asdict(f) for f in self.fields] if self.fields is not None else None,
        }


@dataclass
class ConnectionStats:
    """Pool counters for one connection."""

    active: int = 0
    idle: int = 0
    total: int = 0
    waiting: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# ── SQL Server (aioodbc / pyodbc) ───────────────────────────────────

def from_mssql(
    description: Optional[Sequence[Sequence[Any]]],
    rows: Optional[Sequence[Sequence[Any]]],
    rowcount: int = -1,
) -> QueryResult:
    """
    Build a result from DB-API cursor data.

    pyodbc reports the Python type of each column as ``type_code`` and
    ``-1`` as ``rowcount`` for SELECT statements.
    """
    if not description:
        return QueryResult(rows=[], row_count=max(rowcount or 0, 0), fields=None)

    names = [col[0] for col in description]
    fields = [
        FieldInfo(
            name=col[0],
            type_name=getattr(col[1], "__name__", None) if len(col) > 1 else None,
            nullable=bool(col[6]) if len(col) > 6 and col[6] is not None else None,
        )
        for col in description
    ]
    data = [dict(zip(names, row)) for row in (rows or [])]
    return QueryResult(rows=data, row_count=len(data), fields=fields)


# ── MySQL (aiomysql) ────────────────────────────────────────────────

# pymysql.constants.FIELD_TYPE, the common subset
_MYSQL_TYPES = {
    0: "DECIMAL", 1: "TINY", 2: "SHORT", 3: "LONG", 4: "FLOAT", 5: "DOUBLE",
    6: "NULL", 7: "TIMESTAMP", 8: "LONGLONG", 9: "INT24", 10: "DATE",
    11: "TIME", 12: "DATETIME", 13: "YEAR", 15: "VARCHAR", 16: "BIT",
    245: "JSON", 246: "NEWDECIMAL", 247: "ENUM", 248: "SET", 252: "BLOB",
    253: "VAR_STRING", 254: "STRING", 255: "GEOMETRY",
}


def from_mysql(
    rows: Optional[Sequence[Dict[str, Any]]],
    description: Optional[Sequence[Sequence[Any]]] = None,
    rowcount: int = 0,
) -> QueryResult:
    """Build a result from ``DictCursor`` rows; no rowset means an affected count."""
    if description is None:
        return QueryResult(rows=[], row_count=max(rowcount or 0, 0), fields=None)

    fields = [
        FieldInfo(
            name=col[0],
            type_name=_MYSQL_TYPES.get(col[1]) if len(col) > 1 else None,
            nullable=bool(col[6]) if len(col) > 6 and col[6] is not None else None,
        )
        for col in description
    ]
    data = [dict(row) for row in (rows or [])]
    return QueryResult(rows=data, row_count=len(data), fields=fields)


# ── PostgreSQL (asyncpg) ────────────────────────────────────────────

_STATUS_COUNT_RE = re.compile(r"(\d+)\s*$")


def _status_count(status: Optional[str]) -> int:
    """``"INSERT 0 3"`` -> 3, ``"UPDATE 2"`` -> 2, ``"CREATE TABLE"`` -> 0."""
    if not status:
        return 0
    match = _STATUS_COUNT_RE.search(status)
    return int(match.group(1)) if match else 0


def from_postgres(
    records: Optional[Sequence[Any]],
    status: Optional[str] = None,
    attributes: Optional[Sequence[Any]] = None,
) -> QueryResult:
    """
    Build a result from asyncpg records.

    ``attributes`` is ``PreparedStatement.get_attributes()``: items with a
    ``name`` and a ``type`` whose ``name`` is the PostgreSQL type.
    """
    fields = None
    if attributes:
        fields = [
            FieldInfo(name=attr.name, type_name=getattr(attr.type, "name", None))
            for attr in attributes
        ]

    data = [dict(record) for record in (records or [])]
    if data:
        return QueryResult(rows=data, row_count=len(data), fields=fields)
    return QueryResult(rows=[], row_count=_status_count(status), fields=fields)
