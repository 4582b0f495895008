"""Domain-specific exception types for the agent relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

DEFAULT_AGENT_ERROR = "Unknown agent error"


@dataclass
class AgentRelayError(Exception):
    """Base exception for relay domain errors."""

    message: str
    code: str = "agent_relay_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}


class ReadinessTimeoutError(AgentRelayError):
    """The backend agent did not become ready within the queue's wait window."""

    def __init__(self, waited_seconds: float, *, queue_key: str | None = None) -> None:
        self.waited_seconds = waited_seconds
        details: Dict[str, Any] = {"waited_seconds": waited_seconds}
        if queue_key:
            details["queue_key"] = queue_key
        super().__init__(
            message=f"Agent backend did not become ready within {waited_seconds:g}s",
            code="backend_not_ready",
            details=details,
        )


class AgentStreamError(AgentRelayError):
    """The backend emitted an error event during a turn."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message=message or DEFAULT_AGENT_ERROR, code="agent_error")


class AgentClientError(AgentRelayError):
    """HTTP-level failure talking to the backend agent."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        self.status_code = status_code
        super().__init__(message=message, code="agent_client_error", details=details)


class ConfigError(AgentRelayError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)


class SessionStoreError(AgentRelayError):
    """The persisted session store could not be read or written."""

    def __init__(self, message: str, *, config_id: str | None = None) -> None:
        details: Dict[str, Any] = {}
        if config_id:
            details["config_id"] = config_id
        super().__init__(message=message, code="session_store_error", details=details)
