"""Wire the relay core from settings.

Creates every component with file-backed stores under
``settings.work_dir`` and returns them bundled, ready to serve.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import structlog

from agentrelay.application.engine import ChannelEngine
from agentrelay.application.housekeeping import Housekeeping
from agentrelay.application.message_queue import MessageQueue
from agentrelay.application.permission_registry import PermissionRegistry
from agentrelay.application.rate_limiter import RateLimiter
from agentrelay.application.session_router import SessionRouter
from agentrelay.core.domain.config_schema import RelaySettings
from agentrelay.core.interfaces.agent_client import AgentClientProtocol
from agentrelay.core.interfaces.channels import (
    ChannelAdapterProtocol,
    ChannelConfigStoreProtocol,
    MessageLogProtocol,
)
from agentrelay.core.interfaces.session_store import SessionStoreProtocol
from agentrelay.infrastructure.agent.opencode_client import OpenCodeClient
from agentrelay.infrastructure.logging_setup import configure_logging
from agentrelay.infrastructure.persistence.channel_config_store import (
    InMemoryChannelConfigStore,
    YamlChannelConfigStore,
)
from agentrelay.infrastructure.persistence.message_log import FileMessageLog
from agentrelay.infrastructure.persistence.session_store import FileSessionStore


@dataclass
class RelayComponents:
    """All wired components of a relay process.

    Attributes:
        engine: Entry point handed to platform adapters.
        client: Backend agent client (close it on shutdown).
        housekeeping: Periodic cleanup task (start/stop it with the process).
    """

    engine: ChannelEngine
    client: AgentClientProtocol
    housekeeping: Housekeeping


def build_relay(
    settings: RelaySettings,
    adapters: dict[str, ChannelAdapterProtocol],
    *,
    client: AgentClientProtocol | None = None,
    config_store: ChannelConfigStoreProtocol | None = None,
    session_store: SessionStoreProtocol | None = None,
    message_log: MessageLogProtocol | None = None,
) -> RelayComponents:
    """Build the relay core from settings.

    Any collaborator passed explicitly replaces the default built from
    settings.

    Raises:
        ConfigError: If ``settings.channels_file`` is set but invalid.
    """
    configure_logging(settings.log_level)
    logger = structlog.get_logger()

    if config_store is None:
        if settings.channels_file:
            config_store = YamlChannelConfigStore(settings.channels_file)
        else:
            logger.warning("relay.no_channels_file")
            config_store = InMemoryChannelConfigStore()

    rate_limiter = RateLimiter(
        config_limit=settings.config_rate_limit,
        user_limit=settings.user_rate_limit,
        window_ms=settings.rate_window_ms,
    )
    session_router = SessionRouter(
        session_store or FileSessionStore(work_dir=settings.work_dir),
        ttl=timedelta(hours=settings.session_ttl_hours),
    )
    agent_client = client or OpenCodeClient(settings.agent_url)

    engine = ChannelEngine(
        client=agent_client,
        config_store=config_store,
        adapters=adapters,
        session_router=session_router,
        rate_limiter=rate_limiter,
        queue=MessageQueue(
            poll_interval=settings.queue_poll_interval_seconds,
            max_wait=settings.queue_max_wait_seconds,
        ),
        permission_registry=PermissionRegistry(
            timeout_seconds=settings.permission_timeout_seconds
        ),
        message_log=message_log or FileMessageLog(work_dir=settings.work_dir),
    )
    housekeeping = Housekeeping(
        rate_limiter, session_router, interval=settings.housekeeping_interval_seconds
    )
    logger.info(
        "relay.built",
        agent_url=settings.agent_url,
        adapters=sorted(adapters),
        work_dir=settings.work_dir,
    )
    return RelayComponents(engine=engine, client=agent_client, housekeeping=housekeeping)
