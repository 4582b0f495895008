"""Backend agent client."""

from agentrelay.infrastructure.agent.opencode_client import OpenCodeClient
from agentrelay.infrastructure.agent.sse import SseEventTranslator

__all__ = ["OpenCodeClient", "SseEventTranslator"]
