"""
Logging Protocol Interface for Core Domain.

Defines the LoggerProtocol interface the application layer logs through,
keeping it independent of the concrete implementation (structlog).
"""

from typing import Any, Protocol


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def info(self, event: str, **kwargs: Any) -> None:
        ...

    def warning(self, event: str, **kwargs: Any) -> None:
        ...

    def error(self, event: str, **kwargs: Any) -> None:
        ...

    def debug(self, event: str, **kwargs: Any) -> None:
        ...

    def bind(self, **kwargs: Any) -> "LoggerProtocol":
        """Return a logger carrying additional context."""
        ...
