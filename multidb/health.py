"""
multidb Health — JSON-ready health reports for the registry.

Both entry points return plain dicts (ISO timestamps, no driver objects)
and never raise; every failure is logged and reported in the payload.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict

from .db.registry import DatabaseManager

logger = logging.getLogger("multidb.health")

__all__ = ["check_all", "check_database"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


async def check_all(manager: DatabaseManager) -> Dict[str, Any]:
    """
    Probe every registered database.

    ``success`` is True only when every database is healthy.
    """
    checks: Dict[str, Dict[str, Any]] = {}
    names = manager.list_registered()

    for name in names:
        try:
            healthy = await manager.test_connection(name)
            checks[name] = {
                "healthy": healthy,
                "connected": manager.is_connected(name),
                "status": "healthy" if healthy else "unhealthy",
                "timestamp": _now_iso(),
            }
        except Exception as exc:
            logger.error(f"[{name}] Health check failed: {exc}")
            checks[name] = {
                "healthy": False,
                "connected": False,
                "status": "error",
                "error": str(exc),
                "timestamp": _now_iso(),
            }

    healthy_count = sum(1 for check in checks.values() if check["healthy"])
    return {
        "success": healthy_count == len(names),
        "timestamp": _now_iso(),
        "databases": checks,
        "statistics": {name: stats.to_dict() for name, stats in manager.get_stats().items()},
        "summary": {
            "total": len(names),
            "healthy": healthy_count,
            "unhealthy": len(names) - healthy_count,
            "connected": len(manager.list_connected()),
        },
    }


async def check_database(manager: DatabaseManager, name: str) -> Dict[str, Any]:
    """Detailed report for one database, including server version and time."""
    if not name:
        return {
            "success": False,
            "error": "Database name is required",
            "timestamp": _now_iso(),
        }

    if not manager.has(name):
        return {
            "success": False,
            "database": name,
            "error": "Database not registered",
            "available": manager.list_registered(),
            "timestamp": _now_iso(),
        }

    try:
        database = await manager.get(name)
        healthy = await database.test_connection()

        server_info = None
        if healthy:
            try:
                row = await database.server_info()
                server_info = {
                    "version": _jsonable(row.get("version")),
                    "server_time": _jsonable(row.get("server_time")),
                }
            except Exception as exc:
                logger.warning(f"[{name}] Could not fetch server info: {exc}")

        return {
            "success": healthy,
            "database": name,
            "type": database.backend_type.value,
            "status": "healthy" if healthy else "unhealthy",
            "connected": manager.is_connected(name),
            "server_info": server_info,
            "statistics": database.get_stats().to_dict(),
            "timestamp": _now_iso(),
        }
    except Exception as exc:
        logger.log(getattr(exc, "log_level", logging.ERROR), f"[{name}] Health check error: {exc}")
        return {
            "success": False,
            "database": name,
            "status": "error",
            "error": str(exc),
            "timestamp": _now_iso(),
        }
