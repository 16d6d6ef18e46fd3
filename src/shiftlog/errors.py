"""Structured error handling with context + cause + fix pattern.

All shiftlog errors follow a consistent pattern that provides:
- Context: What operation was being attempted
- Cause: Why it failed
- Fix: How to resolve the issue

Backend failures are split into two classes with stable codes so callers
can tell a transient outage from a rejected permission.
"""

from __future__ import annotations


class ShiftlogError(Exception):
    """Base error with structured messaging.

    All shiftlog errors inherit from this class and provide
    context, cause, and fix information.
    """

    def __init__(self, context: str, cause: str, fix: str) -> None:
        self.context = context
        self.cause = cause
        self.fix = fix
        message = f"{context}\n\nCause: {cause}\n\nFix: {fix}"
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize error to structured dict for JSON output."""
        return {
            "error": True,
            "code": type(self).__name__,
            "context": self.context,
            "cause": self.cause,
            "fix": self.fix,
        }


class ConfigurationError(ShiftlogError):
    """Configuration file or settings related errors."""

    pass


class ConfigNotFoundError(ConfigurationError):
    """Configuration file not found."""

    def __init__(self, path: str) -> None:
        super().__init__(
            context=f"Loading configuration from '{path}'",
            cause="Configuration file not found",
            fix=f"Create a shiftlog.yaml file at '{path}' with at least a name, default_env and one environment",
        )


class ConfigValidationError(ConfigurationError):
    """Configuration validation failed."""

    def __init__(self, path: str, details: str) -> None:
        super().__init__(
            context=f"Validating configuration from '{path}'",
            cause=details,
            fix="Check the configuration file matches the expected schema. See README for the shiftlog.yaml format.",
        )


class EnvironmentNotFoundError(ConfigurationError):
    """Requested environment not defined in configuration."""

    def __init__(self, env: str, available: list[str]) -> None:
        available_str = ", ".join(available) if available else "(none)"
        super().__init__(
            context=f"Resolving environment '{env}'",
            cause=f"Environment '{env}' is not defined in shiftlog.yaml",
            fix=f"Use one of the available environments: {available_str}, or add '{env}' to the environments section",
        )


class BackendError(ShiftlogError):
    """Persistence backend errors.

    ``code`` is a stable classification shown to the UI layer.
    """

    code = "backend-error"

    @property
    def message(self) -> str:
        """Single-line form used on subscription error channels."""
        return f"{self.code}: {self.cause}"


class ConnectivityError(BackendError):
    """Backend unreachable or offline. Transient, resolves on reconnect."""

    code = "unavailable"

    def __init__(self, operation: str, details: str) -> None:
        super().__init__(
            context=operation,
            cause=f"Backend unavailable ({details})",
            fix="Check the connection to the backend. Cached data stays visible and updates resume automatically once it is reachable.",
        )


class AuthorizationError(BackendError):
    """Backend rejected the operation. Not retried automatically."""

    code = "permission-denied"

    def __init__(self, operation: str, details: str) -> None:
        super().__init__(
            context=operation,
            cause=f"Permission denied ({details})",
            fix="Ask an administrator to grant write access to the backend, or switch to an environment you can write to.",
        )


class RenameError(ShiftlogError):
    """Vocabulary rename could not be completed."""

    def __init__(self, kind: str, old: str, new: str, details: str) -> None:
        super().__init__(
            context=f"Renaming {kind} entry '{old}' to '{new}'",
            cause=details,
            fix="Retry the rename once the backend is reachable. Records already rewritten keep the new value.",
        )


class ConfirmationError(ShiftlogError):
    """A destructive action was refused by the confirmation policy."""

    def __init__(self, action: str, details: str) -> None:
        super().__init__(
            context=action,
            cause=details,
            fix="Follow the confirmation steps (export first, then confirm) or pass the configured password.",
        )


class RecordValidationError(ShiftlogError):
    """Record fields failed validation."""

    def __init__(self, operation: str, details: str) -> None:
        super().__init__(
            context=operation,
            cause=details,
            fix="Check the field values: dates are YYYY-MM-DD, meters and changes are non-negative integers, and machine, shift and boss use the listed values.",
        )


class RecordNotFoundError(ShiftlogError):
    """No Record (or more than one) matches an identifier."""

    def __init__(self, ref: str, details: str = "No record has this identifier") -> None:
        super().__init__(
            context=f"Looking up record '{ref}'",
            cause=details,
            fix="Run 'shiftlog ls' to see identifiers. A unique prefix of at least 4 characters is enough.",
        )


class ExportError(ShiftlogError):
    """Writing an export file failed."""

    def __init__(self, path: str, details: str) -> None:
        super().__init__(
            context=f"Exporting records to '{path}'",
            cause=details,
            fix="Choose a writable location for the export file. Nothing was deleted.",
        )
