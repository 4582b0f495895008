"""
Domain Models

This package contains the core domain models of the relay:
- Normalized messages and channel configurations
- Backend stream events and permission requests
- The error taxonomy
- Configuration schemas
"""

from agentrelay.core.domain.channels import (
    ChannelConfig,
    NormalizedMessage,
    PermissionRequest,
    SessionStrategy,
    StreamEvent,
    StreamEventType,
)
from agentrelay.core.domain.errors import (
    AgentRelayError,
    AgentStreamError,
    ReadinessTimeoutError,
)

__all__ = [
    "AgentRelayError",
    "AgentStreamError",
    "ChannelConfig",
    "NormalizedMessage",
    "PermissionRequest",
    "ReadinessTimeoutError",
    "SessionStrategy",
    "StreamEvent",
    "StreamEventType",
]
