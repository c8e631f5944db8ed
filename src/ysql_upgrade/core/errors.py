"""
Structured error types for ysql-upgrade.

Every failure during an upgrade is fatal to the whole run.  Instead of
bare exceptions that lose track of *where* the run stopped, each error
carries the database, migration, and target version it was raised for,
so the operator can fix the cause and simply re-run the tool.

Manifesto:
    - **Typed Error Hierarchy:** One error type per failure domain
    - **Rich Context:** Errors name the database and script involved
    - **Error Chaining:** Preserve the driver / OS exception as cause
    - **No Retry:** Progress is checkpointed; recovery is a re-run

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        UpgradeError                           │
        │               (category, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  DiscoveryError        DatabaseConnectionError   QueryError  │
        │  (DISCOVERY)           (CONNECTION)              (QUERY)     │
        │                                                               │
        │  ApplicationError      ConfigError                            │
        │  (APPLICATION)         (CONFIG)                               │
        │       │                                                       │
        │  MigrationNotFoundError                                       │
        └──────────────────────────────────────────────────────────────┘

Examples:
    Adding context to an error:

    >>> error = QueryError("relation does not exist")
    >>> error.with_context(database="yugabyte", migration="V2__1__x.sql")
    QueryError(...)
    >>> error.context.database
    'yugabyte'

Guardrails:
    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as cause= for error chaining

    ❌ DON'T: Retry a failed migration inside the run
    ✅ DO: Let the error surface; the next run resumes from the tracking table

Tags:
    error-handling, exception-hierarchy, error-context, ysql-upgrade

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Failure domains of an upgrade run."""

    DISCOVERY = "DISCOVERY"
    CONNECTION = "CONNECTION"
    QUERY = "QUERY"
    APPLICATION = "APPLICATION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured context attached to an error.

    Attributes:
        database: Database the failing operation ran against
        migration: Migration script filename
        version: Target version, rendered as ``"major.minor"``
        metadata: Additional key-value pairs
    """

    database: str | None = None
    migration: str | None = None
    version: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["database", "migration", "version"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class UpgradeError(Exception):
    """
    Base exception for all ysql-upgrade errors.

    Subclasses set ``default_category``; callers enrich the error with
    :meth:`with_context` as it travels up from the transport to the
    scheduler.

    Examples:
        >>> error = UpgradeError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise OSError("permission denied")
        ... except OSError as e:
        ...     error = ApplicationError("Failed to read migration", cause=e)
        >>> error.cause
        OSError('permission denied')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> UpgradeError:
        """
        Add context to this error (fluent API).

        Known fields are set directly; anything else lands in ``metadata``.
        Fields already set by an inner layer are kept.

        Usage:
            raise QueryError("Failed").with_context(database="template1")
        """
        for key, value in kwargs.items():
            if value is None:
                continue
            if key == "version":
                value = str(value)
            if hasattr(self.context, key) and key != "metadata":
                if getattr(self.context, key) is None:
                    setattr(self.context, key, value)
            else:
                self.context.metadata.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging / JSON output."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __str__(self) -> str:
        context = self.context.to_dict()
        if not context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in context.items())
        return f"{self.message} ({details})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DISCOVERY
# =============================================================================


class DiscoveryError(UpgradeError):
    """Migrations directory missing, empty, or holding a misnamed script."""

    default_category = ErrorCategory.DISCOVERY


# =============================================================================
# DATABASE
# =============================================================================


class DatabaseConnectionError(UpgradeError):
    """Cannot reach or authenticate to a database."""

    default_category = ErrorCategory.CONNECTION


class QueryError(UpgradeError):
    """A query failed or returned an unexpected row shape."""

    default_category = ErrorCategory.QUERY


# =============================================================================
# APPLICATION
# =============================================================================


class ApplicationError(UpgradeError):
    """A migration could not be loaded, executed, or recorded."""

    default_category = ErrorCategory.APPLICATION


class MigrationNotFoundError(ApplicationError):
    """No migration follows the database's current version."""


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(UpgradeError):
    """Settings that cannot be used to reach the cluster."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "UpgradeError",
    "DiscoveryError",
    "DatabaseConnectionError",
    "QueryError",
    "ApplicationError",
    "MigrationNotFoundError",
    "ConfigError",
]
