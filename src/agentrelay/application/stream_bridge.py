"""
Stream Bridge
=============

Turns a backend turn's event stream into a lazy, cancellable stream of
text chunks.

A background task consumes the events as they arrive and buffers text
deltas; the consumer pulls chunks with ``async for``. ``busy`` events are
reported through the optional tool-activity callback, ``permission`` and
``file`` events are left to other handlers and never show up as text.
A backend ``error`` is raised to the consumer only after every chunk
buffered before it has been delivered.

Usage::

    stream = StreamBridge().bridge(client.run_turn(session_id, prompt))
    async with stream:
        async for chunk in stream:
            ...
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog

from agentrelay.core.domain.channels import StreamEvent, StreamEventType, ToolActivity
from agentrelay.core.domain.errors import AgentStreamError
from agentrelay.core.interfaces.logging import LoggerProtocol

ToolActivityCallback = Callable[[ToolActivity], Any]

BUSY_ACTIVITY = ToolActivity(tool="session", status="running", title="Processing...")


class TextStream:
    """Async iterator over the text deltas of one backend turn.

    Supports a single consumer at a time. ``aclose()`` stops the
    background consumer and closes the underlying event source.
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        *,
        on_tool_activity: ToolActivityCallback | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._events = events
        self._on_tool_activity = on_tool_activity
        self._logger = logger or structlog.get_logger().bind(component="stream_bridge")
        self._chunks: deque[str] = deque()
        self._finished = False
        self._error: AgentStreamError | None = None
        self._error_raised = False
        self._closed = False
        self._waiting = False
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._consume(), name="stream-bridge")

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __aiter__(self) -> TextStream:
        return self

    async def __anext__(self) -> str:
        while not self._chunks and not self._finished:
            if self._waiting:
                raise RuntimeError("TextStream supports only one waiting consumer")
            self._waiting = True
            try:
                await self._wakeup.wait()
            finally:
                self._waiting = False
            self._wakeup.clear()

        if self._chunks:
            return self._chunks.popleft()

        if self._error is not None and not self._error_raised:
            self._error_raised = True
            raise self._error

        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Stop early: cancel the background consumer and close the source.

        Errors raised while closing the source are swallowed.
        """
        if self._closed:
            return
        self._closed = True
        self._finished = True
        self._wakeup.set()

        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self._close_source()

    async def __aenter__(self) -> TextStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def finished(self) -> bool:
        return self._finished

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        try:
            async for event in self._events:
                if self._finished:
                    break
                if event.type == StreamEventType.TEXT:
                    if event.data:
                        self._chunks.append(event.data)
                        self._wakeup.set()
                elif event.type == StreamEventType.BUSY:
                    self._notify_tool_activity(BUSY_ACTIVITY)
                elif event.type == StreamEventType.DONE:
                    break
                elif event.type == StreamEventType.ERROR:
                    self._error = AgentStreamError(event.data)
                    self._logger.warning("stream_bridge.agent_error", error=self._error.message)
                    break
                # permission and file events are handled outside this bridge
        except asyncio.CancelledError:
            self._finish()
            raise
        except Exception as exc:
            error = AgentStreamError(str(exc) or type(exc).__name__)
            error.__cause__ = exc
            self._error = error
            self._logger.warning(
                "stream_bridge.source_failed", error=str(exc), error_type=type(exc).__name__
            )
        self._finish()
        await self._close_source()

    def _finish(self) -> None:
        self._finished = True
        self._wakeup.set()

    def _notify_tool_activity(self, activity: ToolActivity) -> None:
        if self._on_tool_activity is None:
            return
        try:
            self._on_tool_activity(activity)
        except Exception as exc:
            self._logger.warning("stream_bridge.tool_activity_failed", error=str(exc))

    async def _close_source(self) -> None:
        aclose = getattr(self._events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            self._logger.debug("stream_bridge.source_close_failed", error=str(exc))


class StreamBridge:
    """Factory for text streams sharing a default tool-activity callback."""

    def __init__(
        self,
        on_tool_activity: ToolActivityCallback | None = None,
        *,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._on_tool_activity = on_tool_activity
        self._logger = logger

    def bridge(
        self,
        events: AsyncIterator[StreamEvent],
        on_tool_activity: ToolActivityCallback | None = None,
    ) -> TextStream:
        """Start consuming ``events`` and return the text stream.

        Must be called from within a running event loop.
        """
        return TextStream(
            events,
            on_tool_activity=on_tool_activity or self._on_tool_activity,
            logger=self._logger,
        )
