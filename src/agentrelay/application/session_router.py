"""
Session Router
==============

Maps a conversation onto a durable backend agent session.

A conversation is identified by a *routing key* derived from the channel
config, the channel type, the config's session strategy and a
strategy-specific discriminator:

- ``single``:      ``global`` (one session for the whole config)
- ``per-thread``:  thread id, else group id, else user id
- ``per-user``:    platform user id
- ``per-message``: the message's external id (never reused)

Lookups go through an in-memory cache with a 24 h TTL, backed by the
persisted session store which survives restarts. Refreshing
``last_used_at`` in the store is a detached, best-effort write.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from agentrelay.core.domain.channels import (
    ChannelConfig,
    NormalizedMessage,
    PersistedSession,
    SessionStrategy,
)
from agentrelay.core.interfaces.agent_client import AgentClientProtocol
from agentrelay.core.interfaces.logging import LoggerProtocol
from agentrelay.core.interfaces.session_store import SessionStoreProtocol

DEFAULT_SESSION_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_routing_key(
    config_id: str,
    channel_type: str,
    strategy: SessionStrategy | str,
    message: NormalizedMessage,
) -> str:
    """Build the deterministic routing key for a message."""
    strategy_value = _strategy_value(strategy)

    if strategy_value == SessionStrategy.SINGLE.value:
        discriminator = "global"
    elif strategy_value == SessionStrategy.PER_THREAD.value:
        discriminator = message.thread_id or message.group_id or message.platform_user.id
    elif strategy_value == SessionStrategy.PER_MESSAGE.value:
        discriminator = message.external_id
    else:
        discriminator = message.platform_user.id

    return f"{config_id}:{channel_type}:{strategy_value}:{discriminator}"


@dataclass
class _CachedSession:
    session_id: str
    last_used_at: datetime


class SessionRouter:
    """Resolve, invalidate and look up backend sessions for conversations.

    The cache is private to the router; callers only use the methods below.

    Args:
        store: Persisted session store (source of truth).
        ttl: Sessions unused for longer than this are replaced.
        time_provider: Wall-clock source, UTC-aware.
    """

    def __init__(
        self,
        store: SessionStoreProtocol,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        time_provider: Callable[[], datetime] | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._time_provider = time_provider or _utcnow
        self._cache: dict[str, _CachedSession] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._logger = logger or structlog.get_logger().bind(component="session_router")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        client: AgentClientProtocol,
    ) -> str:
        """Get or create the backend session for a message's conversation.

        Returns:
            The backend session id.

        Raises:
            Whatever the client raises when a session has to be created,
            or the store raises when persisting a new mapping.
        """
        strategy = config.session_strategy
        key = build_routing_key(config.id, config.channel_type, strategy, message)

        if _strategy_value(strategy) == SessionStrategy.PER_MESSAGE.value:
            session_id = await client.create_session(config.agent_name)
            self._logger.info(
                "session_router.created",
                config_id=config.id,
                session_key=key,
                session_id=session_id,
                strategy=SessionStrategy.PER_MESSAGE.value,
            )
            return session_id

        now = self._time_provider()

        cached = self._cache.get(key)
        if cached is not None and not self._expired(cached.last_used_at, now):
            cached.last_used_at = now
            self._touch_detached(config.id, key, now)
            return cached.session_id

        persisted = await self._store.get(config.id, key)
        if persisted is not None and not self._expired(persisted.last_used_at, now):
            self._cache[key] = _CachedSession(
                session_id=persisted.backend_session_id, last_used_at=now
            )
            self._touch_detached(config.id, key, now)
            self._logger.debug(
                "session_router.restored",
                config_id=config.id,
                session_key=key,
                session_id=persisted.backend_session_id,
            )
            return persisted.backend_session_id

        session_id = await client.create_session(config.agent_name)
        self._cache[key] = _CachedSession(session_id=session_id, last_used_at=now)

        # Upsert tolerates a concurrent resolver racing on the same key.
        await self._store.upsert(
            PersistedSession(
                id=persisted.id if persisted else str(uuid.uuid4()),
                config_id=config.id,
                session_key=key,
                backend_session_id=session_id,
                created_at=persisted.created_at if persisted else now,
                last_used_at=now,
            )
        )
        self._logger.info(
            "session_router.created",
            config_id=config.id,
            session_key=key,
            session_id=session_id,
            replaced_stale=persisted is not None,
        )
        return session_id

    async def invalidate_session(
        self,
        config_id: str,
        channel_type: str,
        strategy: SessionStrategy | str,
        message: NormalizedMessage,
    ) -> None:
        """Forget the session of a conversation in cache and store."""
        key = build_routing_key(config_id, channel_type, strategy, message)
        self._cache.pop(key, None)
        await self._store.delete(config_id, key)
        self._logger.info("session_router.invalidated", config_id=config_id, session_key=key)

    async def get_active_session_id(
        self, config_id: str, user_id: str | None = None
    ) -> str | None:
        """Best-effort reverse lookup of a live session for a config.

        Scans the cache first, then falls back to the most recently used
        persisted record. With ``user_id`` the key's discriminator must
        equal the user id exactly.
        """
        now = self._time_provider()
        prefix = f"{config_id}:"
        suffix = f":{user_id}" if user_id else None

        for key, entry in self._cache.items():
            if not key.startswith(prefix):
                continue
            if suffix and not key.endswith(suffix):
                continue
            if not self._expired(entry.last_used_at, now):
                return entry.session_id

        row = await self._store.most_recent(config_id)
        if row is None or self._expired(row.last_used_at, now):
            return None
        if suffix and not row.session_key.endswith(suffix):
            return None
        return row.backend_session_id

    def cleanup(self) -> int:
        """Evict expired cache entries. The persisted store is not swept.

        Returns:
            Number of cache entries removed.
        """
        now = self._time_provider()
        expired = [key for key, entry in self._cache.items() if self._expired(entry.last_used_at, now)]
        for key in expired:
            del self._cache[key]
        if expired:
            self._logger.debug("session_router.cleanup", removed=len(expired))
        return len(expired)

    def cache_size(self) -> int:
        return len(self._cache)

    async def wait_for_background_writes(self) -> None:
        """Await detached store writes still in flight."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _expired(self, last_used_at: datetime, now: datetime) -> bool:
        return now - last_used_at >= self._ttl

    def _touch_detached(self, config_id: str, key: str, when: datetime) -> None:
        task = asyncio.create_task(self._touch(config_id, key, when))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _touch(self, config_id: str, key: str, when: datetime) -> None:
        try:
            await self._store.touch(config_id, key, when)
        except Exception as exc:
            self._logger.warning(
                "session_router.touch_failed",
                config_id=config_id,
                session_key=key,
                error=str(exc),
            )


def _strategy_value(strategy: SessionStrategy | str) -> str:
    return strategy.value if isinstance(strategy, SessionStrategy) else str(strategy)
