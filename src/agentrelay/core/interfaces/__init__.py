"""
Core Protocol Interfaces

Contracts for every external collaborator of the relay core. The
application layer depends only on these protocols, so tests can swap in
in-memory fakes.

Available Protocols:
    - AgentClientProtocol: backend agent sessions, turns and permission replies
    - SessionStoreProtocol: durable session mapping
    - ChannelAdapterProtocol: chat-platform delivery
    - ChannelConfigStoreProtocol: channel configuration lookup
    - MessageLogProtocol: relayed message log
    - LoggerProtocol: structured logging
"""

from agentrelay.core.interfaces.agent_client import AgentClientProtocol, ReadinessProbe
from agentrelay.core.interfaces.channels import (
    ChannelAdapterProtocol,
    ChannelConfigStoreProtocol,
    MessageLogProtocol,
    PermissionPromptAdapterProtocol,
)
from agentrelay.core.interfaces.logging import LoggerProtocol
from agentrelay.core.interfaces.session_store import SessionStoreProtocol

__all__ = [
    "AgentClientProtocol",
    "ChannelAdapterProtocol",
    "ChannelConfigStoreProtocol",
    "LoggerProtocol",
    "MessageLogProtocol",
    "PermissionPromptAdapterProtocol",
    "ReadinessProbe",
    "SessionStoreProtocol",
]
