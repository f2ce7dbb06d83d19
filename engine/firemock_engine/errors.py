"""
Error types for the firemock engine.

This module defines all exception types raised by the engine and the
client surface built on it:
- FiremockError: Base exception
- ConfigurationError: Sign-in attempted with no handler configured
- InvalidIdentityError: Sign-in handler returned something that is not a user
- PermissionDeniedError: Rules denied a read or write
- UnsupportedOperationError: Stubbed client API was called
- NotACollectionError: child_added requested on a leaf
- InvalidPathError / InvalidValueError / InvalidPatchError: Bad caller input
- RulesSyntaxError / RuleEvaluationError: Rules document problems
- AppNotFoundError / DuplicateAppError: App registry lookups

Invariants:
    - All errors inherit from FiremockError
    - Errors include context for debugging in ``details``
    - Handler faults are never wrapped; they propagate as raised
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FiremockError(Exception):
    """Base exception for all firemock errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "FIREMOCK_ERROR"
        self.details = details or {}


class ConfigurationError(FiremockError):
    """A sign-in method was called without a handler.

    Recoverable: register the handler on the auth object and retry.
    """

    def __init__(self, message: str, handler_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="auth/no-handler",
            details={"handler": handler_name},
        )
        self.handler_name = handler_name


class InvalidIdentityError(FiremockError):
    """A sign-in handler returned a value that cannot become a user."""

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(
            message,
            code="auth/invalid-user",
            details={"errors": errors or []},
        )
        self.errors = errors or []


class PermissionDeniedError(FiremockError):
    """Rules rejected an operation.

    Both verdicts are carried so tests can tell an authorization failure
    (``permitted`` is False) from a validation failure (``validated`` is
    False).

    Attributes:
        path: Path the operation targeted
        operation: "read", "write" or "update"
        permitted: Outcome of the .read/.write rules
        validated: Outcome of the .validate rules
        denied_by: Rule expression (or description) that failed, if known
    """

    def __init__(
        self,
        path: str,
        operation: str,
        permitted: bool,
        validated: bool,
        denied_by: Optional[str] = None,
    ) -> None:
        reasons = []
        if not permitted:
            reasons.append("not permitted")
        if not validated:
            reasons.append("failed validation")
        msg = f"PERMISSION_DENIED: {operation} at /{path} {' and '.join(reasons)}"
        if denied_by:
            msg += f" ({denied_by})"
        super().__init__(
            msg,
            code="PERMISSION_DENIED",
            details={
                "path": path,
                "operation": operation,
                "permitted": permitted,
                "validated": validated,
                "denied_by": denied_by,
            },
        )
        self.path = path
        self.operation = operation
        self.permitted = permitted
        self.validated = validated
        self.denied_by = denied_by


class UnsupportedOperationError(FiremockError, NotImplementedError):
    """A client API that the mock does not simulate was called.

    Raised eagerly so a test relying on live listeners or transactions fails
    at the call site instead of silently waiting.
    """

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"{operation} is not supported by the in-memory database",
            code="UNSUPPORTED",
            details={"operation": operation},
        )
        self.operation = operation


class NotACollectionError(FiremockError):
    """child_added was requested on a location without children."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot read first child of /{path}: {reason}",
            code="NOT_A_COLLECTION",
            details={"path": path, "reason": reason},
        )
        self.path = path


class InvalidPathError(FiremockError, ValueError):
    """Path contains an illegal segment."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Invalid path '{path}': {reason}",
            code="INVALID_PATH",
            details={"path": path, "reason": reason},
        )
        self.path = path


class InvalidValueError(FiremockError, ValueError):
    """Value cannot be stored in the tree."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_VALUE", details={"path": path})
        self.path = path


class InvalidPatchError(FiremockError, ValueError):
    """Update patch is malformed (empty key, overlapping keys...)."""

    def __init__(self, message: str, keys: Optional[list[str]] = None) -> None:
        super().__init__(message, code="INVALID_PATCH", details={"keys": keys or []})
        self.keys = keys or []


class RulesSyntaxError(FiremockError):
    """Rules document is malformed or contains a disallowed expression."""

    def __init__(self, message: str, rule_path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="RULES_SYNTAX",
            details={"rule_path": rule_path},
        )
        self.rule_path = rule_path


class RuleEvaluationError(FiremockError):
    """A rule expression failed at evaluation time.

    The ruleset turns this into a false verdict for the rule.
    """

    def __init__(self, message: str, expression: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="RULE_EVALUATION",
            details={"expression": expression},
        )
        self.expression = expression


class AppNotFoundError(FiremockError):
    """No app registered under the requested name."""

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message, code="app/no-app", details={"name": name})
        self.name = name


class DuplicateAppError(FiremockError):
    """An app with this name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Firebase App named '{name}' already exists",
            code="app/duplicate-app",
            details={"name": name},
        )
        self.name = name
