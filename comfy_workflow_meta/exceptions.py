"""
Comfy Workflow Meta - Exception Hierarchy
==========================================

Only a handful of conditions in this package raise. Malformed workflow
content never does: it is collected as ValidationIssue values. Exceptions are
reserved for:

- text that is not parseable JSON when a snapshot is requested
- a bad node-type registration
- an assembler post-condition failure (a bug signal, not a user-input signal)

Every error carries a technical message plus user-facing and ELI5 variants,
a structured code and recovery suggestions.

Usage:
    from comfy_workflow_meta.exceptions import WorkflowSyntaxError

    try:
        snapshot = MetadataAssembler().parse_json(text)
    except WorkflowSyntaxError as e:
        print(e.user_message)
        logger.error(e.developer_message)
"""

import os
from enum import Enum
from typing import Any

__all__ = [
    # Error levels and verbosity
    "ErrorLevel",
    "VerbosityLevel",
    "set_verbosity",
    "get_verbosity",
    # Result wrapper
    "Result",
    # Exceptions
    "WorkflowMetaError",
    "WorkflowSyntaxError",
    "NodeTypeRegistrationError",
    "SnapshotAssemblyError",
    # Utilities
    "format_error_for_user",
    "collect_suggestions",
]


# =============================================================================
# ERROR LEVELS AND VERBOSITY
# =============================================================================


class ErrorLevel(Enum):
    """Error severity levels for filtering and display."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class VerbosityLevel(Enum):
    """
    Output verbosity levels for different audiences.

    ELI5: Simple explanations for non-technical users
    CASUAL: User-friendly messages for general users
    DEVELOPER: Full technical details for debugging
    """

    ELI5 = "eli5"
    CASUAL = "casual"
    DEVELOPER = "developer"


_current_verbosity: VerbosityLevel | None = None


def _get_verbosity() -> VerbosityLevel:
    """Get current verbosity from environment or global setting."""
    if _current_verbosity is not None:
        return _current_verbosity
    level = os.environ.get("COMFY_WORKFLOW_META_VERBOSITY", "casual").lower()
    try:
        return VerbosityLevel(level)
    except ValueError:
        return VerbosityLevel.CASUAL


def set_verbosity(level: VerbosityLevel | None):
    """Set the global verbosity level (None falls back to the environment)."""
    global _current_verbosity
    _current_verbosity = level


def get_verbosity() -> VerbosityLevel:
    """Get the current verbosity level."""
    return _get_verbosity()


def _is_production() -> bool:
    """Check if running in production mode."""
    return os.environ.get("COMFY_WORKFLOW_META_ENV", "development").lower() == "production"


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class WorkflowMetaError(Exception):
    """
    Base exception for all comfy_workflow_meta errors.

    Attributes:
        message: Technical error message
        user_message: User-friendly explanation
        code: Error code for programmatic handling
        details: Dict with additional context
        suggestions: List of recovery suggestions
        level: Error severity level
    """

    _default_user_message = "An error occurred"
    _default_eli5_message = "Something went wrong"
    _default_suggestions: list[str] = []

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        eli5_message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
        suggestions: list[str] | None = None,
        level: ErrorLevel = ErrorLevel.ERROR,
    ):
        super().__init__(message)
        self.message = message
        self._user_message = user_message
        self._eli5_message = eli5_message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self._suggestions = suggestions
        self.level = level

        if cause:
            self.__cause__ = cause

    @property
    def user_message(self) -> str:
        """Get user-friendly message (for UI display)."""
        return self._user_message or self._default_user_message

    @property
    def eli5_message(self) -> str:
        """Get simple explanation (for non-technical users)."""
        return self._eli5_message or self._default_eli5_message

    @property
    def developer_message(self) -> str:
        """Get full technical message (for logs/debugging)."""
        msg = f"[{self.code}] {self.message}"
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg += f" ({details_str})"
        if self.cause:
            msg += f" [caused by: {type(self.cause).__name__}: {self.cause}]"
        return msg

    @property
    def suggestions(self) -> list[str]:
        """Get recovery suggestions."""
        return self._suggestions or self._default_suggestions

    def get_message(self, verbosity: VerbosityLevel | None = None) -> str:
        """Get message appropriate for the verbosity level."""
        level = verbosity or _get_verbosity()

        if level == VerbosityLevel.ELI5:
            return self.eli5_message
        elif level == VerbosityLevel.CASUAL:
            return self.user_message
        else:
            return self.developer_message

    def add_context(self, key: str, value: Any) -> "WorkflowMetaError":
        """Add context information (chainable)."""
        self.details[key] = value
        return self

    def to_dict(self, include_internal: bool = False) -> dict[str, Any]:
        """
        Convert exception to dictionary for JSON serialization.

        Args:
            include_internal: Include developer details (False in production)
        """
        result = {
            "error": True,
            "code": self.code,
            "message": self.user_message,
            "suggestions": self.suggestions,
        }

        if include_internal or not _is_production():
            result["details"] = self.details
            result["developer_message"] = self.developer_message
            if self.cause:
                result["cause"] = str(self.cause)

        return result

    def __str__(self) -> str:
        if _is_production():
            return self.user_message
        return self.developer_message


# =============================================================================
# INPUT ERRORS
# =============================================================================


class WorkflowSyntaxError(WorkflowMetaError):
    """Workflow text is not parseable JSON."""

    _default_user_message = "The workflow file is not valid JSON"
    _default_eli5_message = "The workflow file is broken and can't be read"
    _default_suggestions = [
        "Export the workflow again using 'Save (API Format)'",
        "Check the file for truncation or stray characters",
    ]

    def __init__(
        self,
        message: str = "Workflow is not valid JSON",
        line: int | None = None,
        column: int | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if line is not None:
            details["line"] = line
        if column is not None:
            details["column"] = column
        super().__init__(message, code="WORKFLOW_SYNTAX_ERROR", details=details, **kwargs)


# =============================================================================
# REGISTRY ERRORS
# =============================================================================


class NodeTypeRegistrationError(WorkflowMetaError):
    """A node type schema could not be registered."""

    _default_user_message = "Unable to register node type"
    _default_eli5_message = "A custom node description is not set up correctly"

    def __init__(self, class_type: str, reason: str, **kwargs):
        details = kwargs.pop("details", {})
        details["class_type"] = class_type
        details["reason"] = reason
        super().__init__(
            f"Cannot register node type '{class_type}': {reason}",
            code="NODE_TYPE_REGISTRATION_ERROR",
            details=details,
            **kwargs,
        )


# =============================================================================
# ASSEMBLY ERRORS
# =============================================================================


class SnapshotAssemblyError(WorkflowMetaError):
    """The assembled snapshot failed its post-condition check."""

    _default_user_message = "Unable to build workflow metadata"
    _default_eli5_message = "Something broke inside the workflow reader"
    _default_suggestions = [
        "This is an internal error, please report it with the workflow attached",
    ]

    def __init__(self, missing_fields: list[str], **kwargs):
        details = kwargs.pop("details", {})
        details["missing_fields"] = missing_fields
        super().__init__(
            f"Snapshot is missing required fields: {', '.join(missing_fields)}",
            code="SNAPSHOT_ASSEMBLY_ERROR",
            details=details,
            level=ErrorLevel.CRITICAL,
            **kwargs,
        )


# =============================================================================
# RESULT CLASS (for structured returns instead of exceptions)
# =============================================================================


class Result:
    """
    A result object that can be either success or failure.

    Usage:
        result = Result.from_exception(assembler.parse_json, text)
        if result.ok:
            snapshot = result.value
        else:
            print(result.error.user_message)
    """

    def __init__(self, value: Any = None, error: WorkflowMetaError | None = None):
        self._value = value
        self._error = error

    @property
    def ok(self) -> bool:
        return self._error is None

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def value(self) -> Any:
        """Get the value. Raises if this is an error result."""
        if self._error:
            raise self._error
        return self._value

    @property
    def error(self) -> WorkflowMetaError | None:
        return self._error

    def value_or(self, default: Any) -> Any:
        """Get the value or a default if this is an error."""
        return self._value if self.ok else default

    def map(self, fn):
        """Apply a function to the value if successful."""
        if self.ok:
            return Result(value=fn(self._value))
        return self

    def to_dict(self, include_internal: bool = False) -> dict[str, Any]:
        if self.ok:
            return {"success": True, "value": self._value}
        return {"success": False, **self._error.to_dict(include_internal)}

    @classmethod
    def success(cls, value: Any) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: WorkflowMetaError) -> "Result":
        return cls(error=error)

    @classmethod
    def from_exception(cls, fn, *args, **kwargs) -> "Result":
        """
        Execute a function and wrap package errors in Result.

        Only WorkflowMetaError is captured; anything else is a bug and propagates.
        """
        try:
            return cls.success(fn(*args, **kwargs))
        except WorkflowMetaError as e:
            return cls.failure(e)

    def __repr__(self) -> str:
        if self.ok:
            return f"Result.success({self._value!r})"
        return f"Result.failure({self._error!r})"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def format_error_for_user(error: Exception, verbosity: VerbosityLevel | None = None) -> str:
    """Format any exception for user display."""
    level = verbosity or _get_verbosity()

    if isinstance(error, WorkflowMetaError):
        return error.get_message(level)

    if level == VerbosityLevel.ELI5:
        return "Something went wrong"
    elif level == VerbosityLevel.CASUAL:
        return f"Error: {type(error).__name__}"
    else:
        return f"{type(error).__name__}: {error}"


def collect_suggestions(error: Exception) -> list[str]:
    """Collect all recovery suggestions from an exception."""
    if isinstance(error, WorkflowMetaError):
        return error.suggestions
    return []
