"""Custom exception hierarchy for cantus-firmus.

This module provides a structured exception hierarchy that enables:
- Consistent error handling across the accessor, pipeline and sync layers
- Rich error context for debugging
- Error categorization for fatal setup errors vs. recovered runtime errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class CantusFirmusError(Exception):
    """Base exception for all cantus-firmus errors.

    Attributes:
        message: Human-readable error description.
        context: Additional context for debugging.
        timestamp: When the error occurred.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now()
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CantusFirmusError):
    """Raised when an instance is configured in a way that cannot work.

    Configuration errors are fatal and abort construction.
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        *,
        field: str | None = None,
        value: Any = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = str(value)[:100]  # Truncate long values
        super().__init__(message, context=ctx, cause=cause)


class ReservedNameError(ConfigurationError):
    """Raised when a rename or namespace targets a framework-owned name."""

    def __init__(
        self,
        name: str,
        *,
        source: str = "rename",
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["name"] = name
        ctx["source"] = source
        super().__init__(
            f"'{name}' is a reserved name and cannot be reassigned",
            context=ctx,
        )
        self.name = name


class ConfigLoadError(ConfigurationError):
    """Raised when an options file fails to load."""

    def __init__(
        self,
        message: str = "Failed to load options file",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Accessor Errors
# =============================================================================


class OverwriteConflictError(CantusFirmusError):
    """Raised when a custom setter collides with a generated one under strict policy."""

    def __init__(
        self,
        accessor_name: str,
        *,
        protection_level: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["accessor"] = accessor_name
        if protection_level is not None:
            ctx["protection_level"] = protection_level
        super().__init__(
            f"The user defined setter '{accessor_name}' was blocked from "
            "overwriting a dynamically generated setter of the same name. "
            "Set allow_setter_overwrite=True to change this behavior.",
            context=ctx,
        )
        self.accessor_name = accessor_name


class RedactionPathError(CantusFirmusError):
    """Reported when a private path references a key that does not exist."""

    def __init__(
        self,
        path: tuple[str, ...] | list[str],
        *,
        missing_key: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["path"] = list(path)
        if missing_key is not None:
            ctx["missing_key"] = missing_key
        super().__init__(
            f"Private path key {missing_key!r} does not exist", context=ctx
        )
        self.path = tuple(path)


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(CantusFirmusError):
    """Base class for shared storage errors."""

    pass


class PersistenceParseError(PersistenceError):
    """Raised when a snapshot read from shared storage is malformed."""

    def __init__(
        self,
        message: str = "Failed to parse persisted snapshot",
        *,
        key: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if key:
            ctx["key"] = key
        super().__init__(message, context=ctx, cause=cause)


class PersistenceWriteError(PersistenceError):
    """Raised when a snapshot cannot be written to shared storage."""

    def __init__(
        self,
        message: str = "Failed to write snapshot",
        *,
        key: str | None = None,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if key:
            ctx["key"] = key
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Window Errors
# =============================================================================


class WindowError(CantusFirmusError):
    """Base class for child window management errors."""

    def __init__(
        self,
        message: str,
        *,
        window_name: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if window_name:
            ctx["window_name"] = window_name
        super().__init__(message, context=ctx, cause=cause)


class WindowSpawnError(WindowError):
    """Raised when a child window cannot be spawned."""

    pass


# =============================================================================
# Error Registry for Categorization
# =============================================================================


@dataclass
class ErrorStats:
    """Track error statistics for monitoring."""

    total_count: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    recent_errors: list[tuple[datetime, str, str]] = field(default_factory=list)
    max_recent: int = 100

    def record(self, error: Exception) -> None:
        """Record an error occurrence."""
        self.total_count += 1
        type_name = type(error).__name__
        self.by_type[type_name] = self.by_type.get(type_name, 0) + 1

        self.recent_errors.append((datetime.now(), type_name, str(error)[:200]))
        if len(self.recent_errors) > self.max_recent:
            self.recent_errors.pop(0)

    def reset(self) -> None:
        """Clear all recorded errors."""
        self.total_count = 0
        self.by_type.clear()
        self.recent_errors.clear()


# Global error stats tracker
error_stats = ErrorStats()


def record_error(error: Exception) -> None:
    """Record an error to global stats."""
    error_stats.record(error)
