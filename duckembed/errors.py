"""Error types raised by the query manager.

Every failure carries the stage it happened in and the root cause, and
chains the original exception.
"""

from __future__ import annotations

from typing import Sequence


class DuckEmbedError(Exception):
    """Base error for all duckembed failures."""


class ModuleAcquisitionError(DuckEmbedError):
    """Raised when no load strategy could provide the engine module."""

    def __init__(self, package_name: str, failures: Sequence[str]) -> None:
        self.package_name = package_name
        self.failures = list(failures)
        details = "\n".join(f"  - {reason}" for reason in self.failures) or "  - no strategy available"
        super().__init__(f"Failed to load engine module {package_name!r}. Tried:\n{details}")


class ConnectionBuildError(DuckEmbedError):
    """Raised when the engine connection cannot be constructed."""

    def __init__(self, step: str, reason: str) -> None:
        self.step = step
        self.reason = reason
        super().__init__(self._format())

    def _format(self) -> str:
        return f"Failed to initialize DuckDB during {self.step}: {self.reason}"


class CrossOriginBlockedError(ConnectionBuildError):
    """Raised when a cross-origin policy blocked loading the worker."""

    def _format(self) -> str:
        return (
            f"Failed to initialize DuckDB: CORS policy blocked worker loading "
            f"during {self.step} ({self.reason})"
        )


class SetupStatementError(DuckEmbedError):
    """Raised when one of the configured setup statements fails."""

    def __init__(self, position: int, statement: str, reason: str) -> None:
        self.position = position
        self.statement = statement
        self.reason = reason
        super().__init__(
            f"Initialization query failed at position {position} ({statement!r}): {reason}"
        )


class FileRegistrationError(DuckEmbedError):
    """Raised when a remote file cannot be registered with the connection."""

    def __init__(self, name: str, url: str, reason: str) -> None:
        self.name = name
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to register file {name}: {reason}")


class QueryExecutionError(DuckEmbedError):
    """Raised when the engine rejects a user statement."""

    def __init__(self, sql: str, reason: str) -> None:
        self.sql = sql
        self.reason = reason
        super().__init__(f"Query execution failed: {reason}")


class ConnectionUnavailableError(DuckEmbedError):
    """Raised when an operation needs a connection that does not exist."""

    def __init__(self) -> None:
        super().__init__("DuckDB connection not available")
