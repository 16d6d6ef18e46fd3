"""Tests for structured error handling."""

from __future__ import annotations

import shiftlog.errors as errors


class TestShiftlogError:
    """Tests for base error class."""

    def test_error_has_context_cause_fix(self) -> None:
        """Error contains context, cause, and fix."""
        err = errors.ShiftlogError(
            context="Loading configuration",
            cause="File not found",
            fix="Create the file",
        )

        assert err.context == "Loading configuration"
        assert err.cause == "File not found"
        assert err.fix == "Create the file"

    def test_error_message_format(self) -> None:
        """Error message combines all parts."""
        err = errors.ShiftlogError(
            context="Loading configuration",
            cause="File not found",
            fix="Create the file",
        )

        message = str(err)
        assert "Loading configuration" in message
        assert "Cause: File not found" in message
        assert "Fix: Create the file" in message

    def test_to_dict(self) -> None:
        """to_dict exposes the class name and all three parts."""
        err = errors.ConfigNotFoundError("shiftlog.yaml")

        data = err.to_dict()

        assert data["error"] is True
        assert data["code"] == "ConfigNotFoundError"
        assert data["context"] == err.context
        assert data["cause"] == err.cause
        assert data["fix"] == err.fix


class TestConfigurationErrors:
    """Tests for configuration error classes."""

    def test_config_not_found_error(self) -> None:
        err = errors.ConfigNotFoundError("/path/to/shiftlog.yaml")

        assert "/path/to/shiftlog.yaml" in str(err)
        assert "not found" in str(err).lower()
        assert isinstance(err, errors.ConfigurationError)

    def test_config_validation_error(self) -> None:
        err = errors.ConfigValidationError("shiftlog.yaml", "  - name: Field required")

        assert "Field required" in err.cause
        assert isinstance(err, errors.ConfigurationError)

    def test_environment_not_found_lists_available(self) -> None:
        err = errors.EnvironmentNotFoundError("prd", ["dev", "demo"])

        assert "prd" in err.context
        assert "dev, demo" in err.fix

    def test_environment_not_found_without_environments(self) -> None:
        err = errors.EnvironmentNotFoundError("prd", [])

        assert "(none)" in err.fix


class TestBackendErrors:
    """Backend errors carry a stable classification code."""

    def test_connectivity_error_code(self) -> None:
        err = errors.ConnectivityError("Writing 'records/r1'", "channel offline")

        assert err.code == "unavailable"
        assert err.message.startswith("unavailable: ")
        assert "channel offline" in err.message
        assert isinstance(err, errors.BackendError)

    def test_authorization_error_code(self) -> None:
        err = errors.AuthorizationError("Writing 'records/r1'", "read-only")

        assert err.code == "permission-denied"
        assert err.message.startswith("permission-denied: ")
        assert isinstance(err, errors.BackendError)

    def test_classes_are_distinct(self) -> None:
        assert not issubclass(errors.ConnectivityError, errors.AuthorizationError)
        assert not issubclass(errors.AuthorizationError, errors.ConnectivityError)


class TestOperationErrors:
    """Errors raised by store, registry and CLI operations."""

    def test_rename_error(self) -> None:
        err = errors.RenameError("comments", "Montado", "Montaje", "Backend unavailable")

        assert "'Montado'" in err.context
        assert "'Montaje'" in err.context
        assert err.cause == "Backend unavailable"

    def test_confirmation_error(self) -> None:
        err = errors.ConfirmationError("Clearing all records", "Incorrect password")

        assert err.context == "Clearing all records"
        assert err.cause == "Incorrect password"

    def test_record_not_found_default_cause(self) -> None:
        err = errors.RecordNotFoundError("abcd")

        assert "abcd" in err.context
        assert "No record" in err.cause

    def test_export_error(self) -> None:
        err = errors.ExportError("/tmp/out.csv", "Permission denied")

        assert "/tmp/out.csv" in err.context
        assert "Nothing was deleted" in err.fix
