"""
multidb faults - Fault classes per domain.

CONFIG: a database block that cannot be turned into a ``DatabaseConfig``.
DATABASE: one class per ``DatabaseErrorKind``; callers branch on ``kind``.
"""

from enum import Enum
from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """
    Raised while loading configuration, before any connection exists.

    ``key`` names the offending setting, either as an environment key
    (``MULTIDB_REPORTS__TYPE``) or a dotted config path (``reports.port``).
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        key: str,
        cause: Optional[BaseException] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.key = key
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=Severity.FATAL,
            retryable=False,
            cause=cause,
            metadata={"key": key, **(metadata or {})},
        )


class ConfigMissingFault(ConfigFault):
    """A required setting is absent or empty."""

    def __init__(self, key: str, **kwargs):
        super().__init__(
            "CONFIG_MISSING",
            f"Required configuration key '{key}' is missing",
            key=key,
            **kwargs,
        )


class ConfigInvalidFault(ConfigFault):
    """A setting is present but cannot be used as given."""

    def __init__(self, key: str, reason: str, **kwargs):
        metadata = {"reason": reason, **(kwargs.pop("metadata", None) or {})}
        super().__init__(
            "CONFIG_INVALID",
            f"Configuration key '{key}' is invalid: {reason}",
            key=key,
            metadata=metadata,
            **kwargs,
        )


# ============================================================================
# DATABASE Faults
# ============================================================================

class DatabaseErrorKind(str, Enum):
    """What went wrong, independent of the backend that reported it."""
    NOT_CONFIGURED = "not_configured"
    DISABLED = "disabled"
    CONNECTION_FAILED = "connection_failed"
    QUERY_FAILED = "query_failed"
    TRANSACTION_FAILED = "transaction_failed"


class DatabaseFault(Fault):
    """
    Base class for every failure surfaced by the connection manager.

    Carries the logical database name, the backend type and the original
    driver exception. ``cause`` is for diagnostics only: callers branch on
    ``kind`` (or the subclass), never on the driver error.
    """

    kind: DatabaseErrorKind

    def __init__(
        self,
        code: str,
        message: str,
        *,
        database: str,
        backend: Optional[str] = None,
        cause: Optional[BaseException] = None,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.database = database
        self.backend = getattr(backend, "value", backend)
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.DATABASE,
            severity=severity,
            retryable=retryable,
            cause=cause,
            metadata={
                "database": database,
                "backend": self.backend,
                "kind": self.kind.value,
                **(metadata or {}),
            },
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            kind=self.kind.value,
            database=self.database,
            backend=self.backend,
        )
        return data


class NotConfiguredFault(DatabaseFault):
    """No configuration registered under the requested name."""

    kind = DatabaseErrorKind.NOT_CONFIGURED

    def __init__(self, database: str, available: Optional[list[str]] = None, **kwargs):
        super().__init__(
            code="DB_NOT_CONFIGURED",
            message=f"No configuration found for database '{database}'",
            database=database,
            metadata={"available": list(available or [])},
            **kwargs,
        )


class DisabledFault(DatabaseFault):
    """Configuration exists but is switched off."""

    kind = DatabaseErrorKind.DISABLED

    def __init__(self, database: str, backend: Optional[str] = None, **kwargs):
        super().__init__(
            code="DB_DISABLED",
            message=f"Database '{database}' is disabled",
            database=database,
            backend=backend,
            severity=Severity.WARN,
            **kwargs,
        )


class ConnectionFailedFault(DatabaseFault):
    """Pool setup, network, authentication or timeout failure."""

    kind = DatabaseErrorKind.CONNECTION_FAILED

    def __init__(self, database: str, backend: Optional[str] = None, reason: str = "", **kwargs):
        message = f"Failed to connect to database '{database}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=message,
            database=database,
            backend=backend,
            retryable=True,
            **kwargs,
        )


class QueryFailedFault(DatabaseFault):
    """Statement rejected by the server, or it timed out."""

    kind = DatabaseErrorKind.QUERY_FAILED

    def __init__(
        self,
        database: str,
        backend: Optional[str] = None,
        reason: str = "",
        *,
        sql: Optional[str] = None,
        **kwargs,
    ):
        message = f"Query failed on database '{database}'"
        if reason:
            message = f"{message}: {reason}"
        metadata = kwargs.pop("metadata", {}) or {}
        if sql is not None:
            metadata["sql"] = sql[:200]
        super().__init__(
            code="DB_QUERY_FAILED",
            message=message,
            database=database,
            backend=backend,
            retryable=True,
            metadata=metadata,
            **kwargs,
        )


class TransactionFailedFault(DatabaseFault):
    """Begin, commit or rollback failed, or the handle was already finished."""

    kind = DatabaseErrorKind.TRANSACTION_FAILED

    def __init__(
        self,
        database: str,
        backend: Optional[str] = None,
        reason: str = "",
        *,
        operation: str = "transaction",
        **kwargs,
    ):
        message = f"Transaction {operation} failed on database '{database}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            code="DB_TRANSACTION_FAILED",
            message=message,
            database=database,
            backend=backend,
            metadata={"operation": operation},
            **kwargs,
        )
