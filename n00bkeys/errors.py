"""
Error taxonomy for the persistent-state subsystem.

Every failure raised here is recoverable by the caller; nothing is fatal to
the host process. The core classifies and reports, presentation belongs to
the front-end.
"""

from typing import Any


class StateError(Exception):
    """
    Base exception for history/configuration state errors.

    Attributes:
        component: Name of the component that raised the error
        message: Error description
        recoverable: Whether the caller can continue after handling it
        context: Additional context for debugging
    """

    def __init__(
        self,
        component: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.component = component
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{component}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/CLI output."""
        return {
            "component": self.component,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class StorageIOError(StateError):
    """File could not be read or written."""


class ParseError(StateError):
    """Persisted document is malformed (bad JSON or wrong shape)."""


class MigrationError(StateError):
    """Schema migration aborted, usually because the backup could not be written."""


class ValidationError(StateError):
    """Invalid scope, key, value or index (not recoverable by retrying)."""

    def __init__(self, component: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(component, message, recoverable=False, context=context)


class AbsentValueError(StateError):
    """No configuration source yields a value for a required key."""

    def __init__(self, key: str, sources: list[str]):
        self.key = key
        self.sources = sources
        super().__init__(
            "settings_resolver",
            f"{key} not found (checked: {', '.join(sources)})",
            context={"key": key, "sources": sources},
        )


class QueryError(StateError):
    """Remote completion call failed before an answer arrived."""
