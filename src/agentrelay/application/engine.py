"""Channel Engine.

Single entry point for inbound channel messages regardless of platform.

Normal flow for ``process_message``:

1. Look up the enabled channel config.
2. Check the dual-scope rate limiter.
3. Enqueue on the per-conversation message queue, which waits for the
   backend agent to become ready.
4. Once admitted: resolve the agent session, build the prompt, run the
   turn and stream the reply back through the channel adapter.
   Permission events suspend the turn until the user answers.
5. Report denials and failures to the user through the adapter.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from agentrelay.application.event_bridge import EventBridge
from agentrelay.application.message_queue import MessageQueue
from agentrelay.application.permission_registry import PermissionRegistry
from agentrelay.application.prompt_builder import (
    build_file_parts,
    build_prompt,
    resolve_agent_name,
    resolve_model,
)
from agentrelay.application.rate_limiter import RateLimiter
from agentrelay.application.session_router import SessionRouter, build_routing_key
from agentrelay.application.stream_bridge import StreamBridge
from agentrelay.core.domain.channels import (
    AgentResponse,
    ChannelConfig,
    FileOutput,
    MessageDirection,
    MessageRecord,
    NormalizedMessage,
    PermissionRequest,
    ProcessResult,
    ProcessStatus,
    StreamEvent,
    StreamEventType,
    ToolActivity,
)
from agentrelay.core.domain.errors import AgentRelayError, ReadinessTimeoutError
from agentrelay.core.interfaces.agent_client import AgentClientProtocol
from agentrelay.core.interfaces.channels import (
    ChannelAdapterProtocol,
    ChannelConfigStoreProtocol,
    MessageLogProtocol,
)
from agentrelay.core.interfaces.logging import LoggerProtocol

NOT_READY_NOTICE = "The agent is not available right now. Please try again in a moment."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChannelEngine:
    """Relay inbound channel messages to the backend agent.

    Usage::

        engine = ChannelEngine(
            client=client,
            config_store=configs,
            adapters={"slack": slack_adapter},
            session_router=SessionRouter(store),
        )
        result = await engine.process_message(normalized_message)

        # From the adapter's interactivity handler:
        engine.reply_permission(permission_id, approved=True)
    """

    def __init__(
        self,
        *,
        client: AgentClientProtocol,
        config_store: ChannelConfigStoreProtocol,
        adapters: dict[str, ChannelAdapterProtocol],
        session_router: SessionRouter,
        rate_limiter: RateLimiter | None = None,
        queue: MessageQueue[NormalizedMessage] | None = None,
        stream_bridge: StreamBridge | None = None,
        permission_registry: PermissionRegistry | None = None,
        message_log: MessageLogProtocol | None = None,
        time_provider: Callable[[], datetime] | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self._client = client
        self._config_store = config_store
        self._adapters = dict(adapters)
        self._session_router = session_router
        self._rate_limiter = rate_limiter or RateLimiter()
        self._queue: MessageQueue[NormalizedMessage] = queue or MessageQueue()
        self._stream_bridge = stream_bridge or StreamBridge()
        self._permissions = permission_registry or PermissionRegistry()
        self._event_bridge = EventBridge(self._permissions)
        self._message_log = message_log
        self._time_provider = time_provider or _utcnow
        self._background: set[asyncio.Task[Any]] = set()
        self._logger = logger or structlog.get_logger().bind(component="channel_engine")

        self._queue.on_process(self._process)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def session_router(self) -> SessionRouter:
        return self._session_router

    @property
    def permissions(self) -> PermissionRegistry:
        return self._permissions

    @property
    def queue(self) -> MessageQueue[NormalizedMessage]:
        return self._queue

    def get_adapter(self, channel_type: str) -> ChannelAdapterProtocol | None:
        return self._adapters.get(channel_type)

    async def process_message(self, message: NormalizedMessage) -> ProcessResult:
        """Handle one normalized inbound message end to end."""
        config = await self._config_store.get_enabled(message.channel_config_id)
        if config is None:
            self._logger.warning(
                "engine.no_enabled_config", config_id=message.channel_config_id
            )
            return ProcessResult(status=ProcessStatus.NO_CONFIG)

        adapter = self._adapters.get(config.channel_type)
        if adapter is None:
            self._logger.error(
                "engine.no_adapter", config_id=config.id, channel_type=config.channel_type
            )
            return ProcessResult(
                status=ProcessStatus.FAILED,
                error=f"No adapter registered for channel type '{config.channel_type}'",
            )

        decision = self._rate_limiter.check(config.id, message.platform_user.id)
        if not decision.allowed:
            retry_after_ms = decision.retry_after_ms or 0
            self._logger.warning(
                "engine.rate_limited",
                config_id=config.id,
                user_id=message.platform_user.id,
                retry_after_ms=retry_after_ms,
            )
            seconds = max(1, math.ceil(retry_after_ms / 1000))
            await self._send_error(
                adapter,
                config,
                message,
                f"You're sending messages too quickly. Please try again in {seconds}s.",
            )
            return ProcessResult(status=ProcessStatus.RATE_LIMITED, retry_after_ms=retry_after_ms)

        queue_key = build_routing_key(
            config.id, config.channel_type, config.session_strategy, message
        )
        try:
            await self._queue.enqueue(queue_key, message, config, self._client)
        except ReadinessTimeoutError as exc:
            await self._send_error(adapter, config, message, NOT_READY_NOTICE)
            return ProcessResult(status=ProcessStatus.FAILED, error=exc.message)
        except Exception as exc:
            reason = exc.message if isinstance(exc, AgentRelayError) else str(exc)
            self._logger.error(
                "engine.process_failed",
                config_id=config.id,
                external_id=message.external_id,
                error=reason,
                error_type=type(exc).__name__,
            )
            await self._send_error(
                adapter, config, message, f"Sorry, I couldn't process your message: {reason}"
            )
            return ProcessResult(status=ProcessStatus.FAILED, error=reason)

        return ProcessResult(status=ProcessStatus.COMPLETED)

    async def reset_session(self, message: NormalizedMessage) -> bool:
        """Start a fresh conversation for the message's routing key.

        Returns:
            False if the message's channel config is unknown or disabled.
        """
        config = await self._config_store.get_enabled(message.channel_config_id)
        if config is None:
            return False
        await self._session_router.invalidate_session(
            config.id, config.channel_type, config.session_strategy, message
        )
        return True

    def reply_permission(self, permission_id: str, approved: bool) -> bool:
        """Deliver a user's approve/reject click to the waiting turn."""
        return self._permissions.reply(permission_id, approved)

    async def shutdown(self) -> None:
        """Cancel queued work and deny pending permission prompts."""
        await self._queue.close()
        self._permissions.cancel_all()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Queue callback: one admitted message
    # ------------------------------------------------------------------

    async def _process(self, message: NormalizedMessage, config: ChannelConfig) -> None:
        adapter = self._adapters[config.channel_type]
        await self._log_message(config, message, MessageDirection.INBOUND, message.content)
        self._fire_and_forget(adapter, "send_typing_indicator", config, message)

        loop = asyncio.get_running_loop()
        try:
            session_id = await self._session_router.resolve(config, message, self._client)
            model = resolve_model(config, message)
            files: list[FileOutput] = []
            started = loop.time()

            events = self._client.run_turn(
                session_id,
                build_prompt(config, message),
                agent_name=resolve_agent_name(config, message),
                model=model,
                file_parts=build_file_parts(message) or None,
            )
            stream = self._stream_bridge.bridge(
                self._observe_side_events(events, config, message, adapter, files),
                on_tool_activity=lambda activity: self._on_tool_activity(
                    adapter, config, message, activity
                ),
            )

            text = ""
            send_update = getattr(adapter, "send_stream_update", None)
            async with stream:
                async for chunk in stream:
                    text += chunk
                    if send_update is not None:
                        await self._best_effort(
                            "send_stream_update", send_update(config, message, text)
                        )

            response = AgentResponse(
                content=text,
                session_id=session_id,
                model_name=model.model_id if model else "default",
                duration_ms=int((loop.time() - started) * 1000),
            )
            await adapter.send_response(config, message, response)

            send_files = getattr(adapter, "send_files", None)
            if files and send_files is not None:
                await self._best_effort("send_files", send_files(config, message, list(files)))
                self._fire_and_forget(adapter, "react_files_changed", config, message)

            self._fire_and_forget(adapter, "react_complete", config, message)
            await self._log_message(
                config, message, MessageDirection.OUTBOUND, text, session_id=session_id
            )
            self._logger.info(
                "engine.turn_completed",
                config_id=config.id,
                session_id=session_id,
                duration_ms=response.duration_ms,
                chars=len(text),
                files=len(files),
            )
        except Exception:
            self._fire_and_forget(adapter, "react_error", config, message)
            raise
        finally:
            remove_typing = getattr(adapter, "remove_typing_indicator", None)
            if remove_typing is not None:
                await self._best_effort(
                    "remove_typing_indicator", remove_typing(config, message)
                )

    async def _observe_side_events(
        self,
        events: AsyncIterator[StreamEvent],
        config: ChannelConfig,
        message: NormalizedMessage,
        adapter: ChannelAdapterProtocol,
        files: list[FileOutput],
    ) -> AsyncIterator[StreamEvent]:
        """Pass events through, handling permission and file events on the way.

        A permission event suspends the turn until the user decides.
        """
        try:
            async for event in events:
                if event.type == StreamEventType.PERMISSION and event.permission:
                    approved = await self._handle_permission(
                        config, message, adapter, event.permission
                    )
                    if not approved:
                        await self._send_error(
                            adapter,
                            config,
                            message,
                            f"Permission request denied: {event.permission.tool}",
                        )
                elif event.type == StreamEventType.FILE and event.file:
                    files.append(event.file)
                yield event
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as exc:
                    self._logger.debug("engine.event_source_close_failed", error=str(exc))

    async def _handle_permission(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        adapter: ChannelAdapterProtocol,
        permission: PermissionRequest,
    ) -> bool:
        if getattr(adapter, "send_permission_request", None) is None:
            self._logger.warning(
                "engine.permission_unsupported",
                channel_type=config.channel_type,
                permission_id=permission.id,
            )
            await self._best_effort(
                "reply_permission", self._client.reply_permission(permission.id, False)
            )
            return False
        return await self._event_bridge.handle_permission_event(
            config, message, permission, adapter, self._client
        )

    # ------------------------------------------------------------------
    # Best-effort helpers
    # ------------------------------------------------------------------

    def _on_tool_activity(
        self,
        adapter: ChannelAdapterProtocol,
        config: ChannelConfig,
        message: NormalizedMessage,
        activity: ToolActivity,
    ) -> None:
        self._logger.debug("engine.tool_activity", tool=activity.tool, status=activity.status)
        self._fire_and_forget(adapter, "send_typing_indicator", config, message)

    async def _send_error(
        self,
        adapter: ChannelAdapterProtocol,
        config: ChannelConfig,
        message: NormalizedMessage,
        text: str,
    ) -> None:
        send_error = getattr(adapter, "send_error", None)
        if send_error is None:
            return
        await self._best_effort("send_error", send_error(config, message, text))

    async def _best_effort(self, operation: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception as exc:
            self._logger.warning("engine.best_effort_failed", operation=operation, error=str(exc))

    def _fire_and_forget(
        self,
        adapter: ChannelAdapterProtocol,
        hook: str,
        config: ChannelConfig,
        message: NormalizedMessage,
    ) -> None:
        method = getattr(adapter, hook, None)
        if method is None:
            return
        task = asyncio.create_task(self._best_effort(hook, method(config, message)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _log_message(
        self,
        config: ChannelConfig,
        message: NormalizedMessage,
        direction: MessageDirection,
        content: str,
        *,
        session_id: str | None = None,
    ) -> None:
        if self._message_log is None:
            return
        record = MessageRecord(
            config_id=config.id,
            direction=direction,
            content=content,
            created_at=self._time_provider(),
            external_id=message.external_id,
            session_id=session_id,
            user_id=message.platform_user.id,
            user_name=message.platform_user.name or None,
        )
        await self._best_effort("message_log", self._message_log.append(record))
