"""
Message Queue
=============

Per-key FIFO buffer that holds inbound messages until the backend agent
reports ready, then processes them one at a time.

Each key runs its own cycle::

    idle -> polling -> draining -> idle
                \\-> timed out (all queued items fail) -> idle

Polling checks ``is_ready()`` immediately and then every
``poll_interval`` seconds, for at most ``max_wait`` seconds. The backend
may still be starting when the first messages arrive (e.g. right after a
deploy); queued messages are kept until it answers, but never longer
than the wait window.

Keys are independent: a slow drain or a timeout on one key never delays
another.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

import structlog

from agentrelay.core.domain.channels import ChannelConfig
from agentrelay.core.domain.errors import ReadinessTimeoutError
from agentrelay.core.interfaces.agent_client import ReadinessProbe
from agentrelay.core.interfaces.logging import LoggerProtocol

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_MAX_WAIT_SECONDS = 90.0

PayloadT = TypeVar("PayloadT")

ProcessCallback = Callable[[PayloadT, ChannelConfig], Awaitable[None]]


class QueuePhase(str, Enum):
    POLLING = "polling"
    DRAINING = "draining"


@dataclass
class QueueItem(Generic[PayloadT]):
    """A queued payload and the future its caller awaits."""

    key: str
    payload: PayloadT
    config: ChannelConfig
    backend: ReadinessProbe
    enqueued_at: float
    completion: asyncio.Future[None]


@dataclass
class _KeyQueue(Generic[PayloadT]):
    items: deque[QueueItem[PayloadT]] = field(default_factory=deque)
    phase: QueuePhase = QueuePhase.POLLING
    task: asyncio.Task[None] | None = None


class MessageQueue(Generic[PayloadT]):
    """Readiness-gated, per-key sequential message processing.

    Usage::

        queue = MessageQueue()
        queue.on_process(handle_message)

        # Resolves once handle_message finished for this payload, or
        # raises ReadinessTimeoutError / the callback's exception.
        await queue.enqueue(routing_key, message, config, client)

    Args:
        poll_interval: Seconds between readiness checks.
        max_wait: Seconds to wait for readiness before failing the key's items.
    """

    def __init__(
        self,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._poll_interval = poll_interval
        self._max_wait = max_wait
        self._queues: dict[str, _KeyQueue[PayloadT]] = {}
        self._callback: ProcessCallback[PayloadT] | None = None
        self._logger = logger or structlog.get_logger().bind(component="message_queue")

    def on_process(self, callback: ProcessCallback[PayloadT]) -> None:
        """Register the callback used to process items of every key."""
        self._callback = callback

    def enqueue(
        self,
        key: str,
        payload: PayloadT,
        config: ChannelConfig,
        backend: ReadinessProbe,
    ) -> asyncio.Future[None]:
        """Append a payload to the key's queue.

        The first payload for an idle key starts a polling cycle against
        ``backend``; payloads added while the key is polling or draining
        join the running cycle.

        Returns:
            A future resolved after the payload was processed, or failed
            with ``ReadinessTimeoutError`` or the callback's exception.
        """
        loop = asyncio.get_running_loop()
        queue = self._queues.get(key)
        if queue is None:
            queue = _KeyQueue()
            self._queues[key] = queue

        item = QueueItem(
            key=key,
            payload=payload,
            config=config,
            backend=backend,
            enqueued_at=loop.time(),
            completion=loop.create_future(),
        )
        queue.items.append(item)

        if queue.task is None:
            queue.task = asyncio.create_task(
                self._poll_and_drain(key, queue, backend), name=f"message-queue:{key}"
            )
        return item.completion

    def queue_size(self, key: str) -> int:
        """Number of items of a key still waiting to be processed."""
        queue = self._queues.get(key)
        return len(queue.items) if queue else 0

    def total_queue_size(self) -> int:
        return sum(len(queue.items) for queue in self._queues.values())

    def phase(self, key: str) -> QueuePhase | None:
        """Current phase of a key, or None when it is idle."""
        queue = self._queues.get(key)
        return queue.phase if queue else None

    async def close(self) -> None:
        """Cancel all running cycles; waiting callers see cancellation."""
        tasks = [queue.task for queue in self._queues.values() if queue.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal cycle
    # ------------------------------------------------------------------

    async def _poll_and_drain(
        self, key: str, queue: _KeyQueue[PayloadT], backend: ReadinessProbe
    ) -> None:
        try:
            if not await self._wait_until_ready(key, backend):
                error = ReadinessTimeoutError(self._max_wait, queue_key=key)
                self._logger.error(
                    "message_queue.readiness_timeout",
                    queue_key=key,
                    failed_items=len(queue.items),
                    waited_seconds=self._max_wait,
                )
                self._fail_all(queue, error)
                return

            queue.phase = QueuePhase.DRAINING
            while queue.items:
                await self._process(queue.items.popleft())
        except asyncio.CancelledError:
            for item in queue.items:
                item.completion.cancel()
            queue.items.clear()
            raise
        except Exception as exc:
            self._logger.error("message_queue.cycle_failed", queue_key=key, error=str(exc))
            self._fail_all(queue, exc)
        finally:
            if self._queues.get(key) is queue:
                del self._queues[key]

    async def _wait_until_ready(self, key: str, backend: ReadinessProbe) -> bool:
        loop = asyncio.get_running_loop()
        started = loop.time()
        polls = 0
        while True:
            polls += 1
            if await self._probe(key, backend):
                if polls > 1:
                    self._logger.info(
                        "message_queue.backend_ready",
                        queue_key=key,
                        waited_seconds=round(loop.time() - started, 3),
                    )
                return True
            remaining = self._max_wait - (loop.time() - started)
            if remaining <= 0:
                return False
            self._logger.debug("message_queue.backend_not_ready", queue_key=key, poll=polls)
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def _probe(self, key: str, backend: ReadinessProbe) -> bool:
        try:
            return bool(await backend.is_ready())
        except Exception as exc:
            self._logger.warning("message_queue.probe_failed", queue_key=key, error=str(exc))
            return False

    async def _process(self, item: QueueItem[PayloadT]) -> None:
        if item.completion.done():
            # Caller gave up (cancelled) before its turn came.
            return
        try:
            if self._callback is not None:
                await self._callback(item.payload, item.config)
        except asyncio.CancelledError:
            item.completion.cancel()
            raise
        except Exception as exc:
            self._logger.warning(
                "message_queue.item_failed",
                queue_key=item.key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if not item.completion.done():
                item.completion.set_exception(exc)
            return
        if not item.completion.done():
            item.completion.set_result(None)

    @staticmethod
    def _fail_all(queue: _KeyQueue[PayloadT], error: BaseException) -> None:
        for item in queue.items:
            if not item.completion.done():
                item.completion.set_exception(error)
        queue.items.clear()
