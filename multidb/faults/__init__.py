"""
multidb faults - structured error types.

Every fallible operation of the connection manager either returns a value or
raises a ``DatabaseFault`` subclass tagged with a ``DatabaseErrorKind``.
Configuration problems raise ``ConfigFault`` subclasses.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigMissingFault,
    ConfigInvalidFault,
    DatabaseErrorKind,
    DatabaseFault,
    NotConfiguredFault,
    DisabledFault,
    ConnectionFailedFault,
    QueryFailedFault,
    TransactionFailedFault,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Config
    "ConfigFault",
    "ConfigMissingFault",
    "ConfigInvalidFault",

    # Database
    "DatabaseErrorKind",
    "DatabaseFault",
    "NotConfiguredFault",
    "DisabledFault",
    "ConnectionFailedFault",
    "QueryFailedFault",
    "TransactionFailedFault",
]
