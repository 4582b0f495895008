"""Session store, message log and channel-config store implementations."""

from agentrelay.infrastructure.persistence.channel_config_store import (
    InMemoryChannelConfigStore,
    YamlChannelConfigStore,
)
from agentrelay.infrastructure.persistence.message_log import FileMessageLog, InMemoryMessageLog
from agentrelay.infrastructure.persistence.session_store import (
    FileSessionStore,
    InMemorySessionStore,
)

__all__ = [
    "FileMessageLog",
    "FileSessionStore",
    "InMemoryChannelConfigStore",
    "InMemoryMessageLog",
    "InMemorySessionStore",
    "YamlChannelConfigStore",
]
