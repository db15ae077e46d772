"""
multidb faults - Core fault types.

A fault is an exception that carries enough structure to be logged and
reported without string parsing: a stable ``code``, the ``domain`` it
belongs to, a ``severity`` and a ``retryable`` hint.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """How loudly a fault should be reported."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def log_level(self) -> int:
        return _LOG_LEVELS[self]


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


class FaultDomain:
    """
    Functional area a fault belongs to.

    Compares equal to its name, so ``fault.domain == "database"`` works.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain({self.name!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return self.name == other

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Missing or malformed database configuration")
FaultDomain.DATABASE = FaultDomain("database", "Connection, query and transaction failures")


# Per-domain fallbacks when a fault does not pass its own severity/retryable
DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.DATABASE: {"severity": Severity.ERROR, "retryable": False},
}


class Fault(Exception):
    """
    Base of every error raised by multidb.

    Subclasses usually fix ``code`` and ``domain`` and build ``message``
    from their arguments. ``cause`` is the lower-level exception, also set
    as ``__cause__`` so tracebacks show the chain.

    Example:
        raise Fault(
            code="CONFIG_MISSING",
            message="Required configuration key 'DB_SERVER' is missing",
            domain=FaultDomain.CONFIG,
        )
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        cause: Optional[BaseException] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code or getattr(self, "code", None)
        self.message = message or getattr(self, "message", None)
        self.domain = domain or getattr(self, "domain", None)
        if not (self.code and self.message and self.domain):
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = defaults["retryable"] if retryable is None else retryable
        self.cause = cause
        self.metadata = metadata or {}
        if cause is not None:
            self.__cause__ = cause

    @property
    def log_level(self) -> int:
        """``logging`` level matching this fault's severity."""
        return self.severity.log_level

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value})"

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for logs and health payloads."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "cause": repr(self.cause) if self.cause is not None else None,
            "metadata": self.metadata,
        }
