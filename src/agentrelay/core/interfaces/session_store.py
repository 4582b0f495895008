"""Protocol for durable session-mapping persistence.

The store is the source of truth that survives restarts; the router's
in-memory cache is only a shim over it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from agentrelay.core.domain.channels import PersistedSession


class SessionStoreProtocol(Protocol):
    """Keyed access to persisted session records."""

    async def get(self, config_id: str, session_key: str) -> PersistedSession | None:
        """Return the record for a session key, or None."""
        ...

    async def upsert(self, record: PersistedSession) -> PersistedSession:
        """Insert or update the record keyed by ``session_key``.

        Must be atomic per key. When a record already exists its ``id``
        and ``created_at`` are kept; the backend session id and
        ``last_used_at`` of the last writer win.

        Returns:
            The record as stored.
        """
        ...

    async def touch(self, config_id: str, session_key: str, when: datetime) -> None:
        """Update ``last_used_at`` of an existing record."""
        ...

    async def delete(self, config_id: str, session_key: str) -> bool:
        """Remove a record. Returns True if it existed."""
        ...

    async def most_recent(self, config_id: str) -> PersistedSession | None:
        """Return the most recently used record of a config, or None."""
        ...
