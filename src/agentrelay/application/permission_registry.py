"""Pending permission requests awaiting a human decision.

When the backend agent asks for permission (e.g. to run a shell command)
the running turn registers a future here and suspends on it. The channel
adapter's interactivity handler calls ``reply`` when the user clicks
approve or reject. Unanswered requests resolve to ``False`` after the
timeout so waiters never hang and the registry never grows unbounded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from agentrelay.core.interfaces.logging import LoggerProtocol

DEFAULT_PERMISSION_TIMEOUT_SECONDS = 5 * 60


@dataclass
class _PendingPermission:
    completion: asyncio.Future[bool]
    expiry: asyncio.TimerHandle


class PermissionRegistry:
    """Rendezvous between a suspended agent turn and a UI interaction.

    At most one entry is live per permission id.

    Args:
        timeout_seconds: Time after which an unanswered request is denied.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_PERMISSION_TIMEOUT_SECONDS,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._pending: dict[str, _PendingPermission] = {}
        self._logger = logger or structlog.get_logger().bind(component="permission_registry")

    def register(self, permission_id: str) -> asyncio.Future[bool]:
        """Create a pending request and return the future of its decision.

        An existing entry for the same id is resolved with ``False`` and
        its timer cancelled before the new one is installed.
        """
        existing = self._pending.pop(permission_id, None)
        if existing is not None:
            existing.expiry.cancel()
            if not existing.completion.done():
                existing.completion.set_result(False)
            self._logger.info("permission_registry.superseded", permission_id=permission_id)

        loop = asyncio.get_running_loop()
        completion: asyncio.Future[bool] = loop.create_future()
        expiry = loop.call_later(self._timeout, self._expire, permission_id, completion)
        self._pending[permission_id] = _PendingPermission(completion=completion, expiry=expiry)
        self._logger.debug("permission_registry.registered", permission_id=permission_id)
        return completion

    def reply(self, permission_id: str, approved: bool) -> bool:
        """Resolve a pending request with the user's decision.

        Returns:
            True if a pending request was found and resolved, False if the
            id is unknown, expired or already answered.
        """
        entry = self._pending.pop(permission_id, None)
        if entry is None:
            self._logger.debug("permission_registry.reply_unknown", permission_id=permission_id)
            return False

        entry.expiry.cancel()
        if not entry.completion.done():
            entry.completion.set_result(approved)
        self._logger.info(
            "permission_registry.replied", permission_id=permission_id, approved=approved
        )
        return True

    def is_pending(self, permission_id: str) -> bool:
        return permission_id in self._pending

    def pending_count(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        """Deny every pending request (used on shutdown)."""
        for permission_id in list(self._pending):
            entry = self._pending.pop(permission_id)
            entry.expiry.cancel()
            if not entry.completion.done():
                entry.completion.set_result(False)

    def _expire(self, permission_id: str, completion: asyncio.Future[bool]) -> None:
        entry = self._pending.get(permission_id)
        # A newer registration under the same id owns the slot now.
        if entry is None or entry.completion is not completion:
            return
        del self._pending[permission_id]
        if not completion.done():
            completion.set_result(False)
        self._logger.info(
            "permission_registry.expired",
            permission_id=permission_id,
            timeout_seconds=self._timeout,
        )
