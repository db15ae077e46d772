"""
Shared test fixtures for the multidb test suite.
"""

import pytest

from multidb.config import BackendType
from multidb.db.registry import DatabaseManager

from fakes import FakeServer, install, make_config


@pytest.fixture
def server(monkeypatch) -> FakeServer:
    """Fake drivers installed for every backend, sharing one scripted server."""
    return install(monkeypatch, FakeServer())


@pytest.fixture
def manager(server) -> DatabaseManager:
    return DatabaseManager([
        make_config("sales", BackendType.MSSQL),
        make_config("absentee", BackendType.MYSQL),
        make_config("engage", BackendType.POSTGRESQL),
        make_config("archive", BackendType.POSTGRESQL, enabled=False),
    ])
