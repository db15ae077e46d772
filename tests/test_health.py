"""
Health reporting (multidb/health.py).
"""

import json
from datetime import datetime

import pytest

from multidb.config import BackendType
from multidb.db.registry import DatabaseManager
from multidb.health import check_all, check_database

from fakes import Reply, make_config


class TestCheckAll:

    @pytest.mark.asyncio
    async def test_mixed_report(self, server, manager):
        report = await check_all(manager)

        assert report["success"] is False
        assert report["summary"] == {"total": 4, "healthy": 3, "unhealthy": 1, "connected": 3}
        assert report["databases"]["archive"]["status"] == "unhealthy"
        assert report["databases"]["archive"]["connected"] is False
        assert report["databases"]["engage"]["healthy"] is True
        assert report["databases"]["engage"]["connected"] is True
        assert set(report["statistics"]) == {"sales", "absentee", "engage"}
        assert report["statistics"]["sales"]["total"] >= 0
        json.dumps(report)
        await manager.disconnect_all()

    @pytest.mark.asyncio
    async def test_all_healthy(self, server):
        manager = DatabaseManager([
            make_config("a", BackendType.MYSQL),
            make_config("b", BackendType.POSTGRESQL),
        ])
        report = await check_all(manager)
        assert report["success"] is True
        assert report["summary"]["unhealthy"] == 0
        await manager.disconnect_all()

    @pytest.mark.asyncio
    async def test_connect_failure_is_unhealthy(self, server):
        server.connect_error = OSError("no route to host")
        manager = DatabaseManager([make_config("a", BackendType.MSSQL)])
        report = await check_all(manager)
        assert report["success"] is False
        assert report["databases"]["a"]["status"] == "unhealthy"
        assert report["statistics"] == {}

    @pytest.mark.asyncio
    async def test_empty_registry(self):
        report = await check_all(DatabaseManager())
        assert report["success"] is True
        assert report["summary"]["total"] == 0


class TestCheckDatabase:

    @pytest.mark.asyncio
    async def test_healthy(self, server, manager):
        report = await check_database(manager, "engage")
        assert report["success"] is True
        assert report["status"] == "healthy"
        assert report["type"] == "postgresql"
        assert report["connected"] is True
        assert report["server_info"]["version"] == "FakeSQL 1.0"
        assert "active" in report["statistics"]
        await manager.disconnect_all()

    @pytest.mark.asyncio
    async def test_server_time_serialized(self, server, manager):
        server.replies["SELECT @@VERSION AS version, GETDATE() AS server_time"] = Reply(
            ["version", "server_time"], [("SQL Server 2022", datetime(2024, 5, 1, 12, 30))], 1
        )
        report = await check_database(manager, "sales")
        assert report["server_info"] == {
            "version": "SQL Server 2022",
            "server_time": "2024-05-01T12:30:00",
        }
        json.dumps(report)
        await manager.disconnect_all()

    @pytest.mark.asyncio
    async def test_server_info_failure_still_healthy(self, server, manager, caplog):
        server.failures["version()"] = RuntimeError("permission denied")
        report = await check_database(manager, "engage")
        assert report["success"] is True
        assert report["server_info"] is None
        assert "Could not fetch server info" in caplog.text
        await manager.disconnect_all()

    @pytest.mark.asyncio
    async def test_unknown(self, manager):
        report = await check_database(manager, "reports")
        assert report["success"] is False
        assert report["error"] == "Database not registered"
        assert report["available"] == ["sales", "absentee", "engage", "archive"]

    @pytest.mark.asyncio
    async def test_missing_name(self, manager):
        report = await check_database(manager, "")
        assert report == {
            "success": False,
            "error": "Database name is required",
            "timestamp": report["timestamp"],
        }

    @pytest.mark.asyncio
    async def test_disabled(self, server, manager):
        report = await check_database(manager, "archive")
        assert report["success"] is False
        assert report["status"] == "error"
        assert "disabled" in report["error"]
        assert server.pools == []
