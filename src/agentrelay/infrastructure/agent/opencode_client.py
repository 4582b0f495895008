"""HTTP/SSE client for a local OpenCode agent server.

Implements AgentClientProtocol on top of one shared ``aiohttp`` session:

- ``GET  /global/health``              readiness
- ``POST /session``                    session creation
- ``GET  /event``                      server-sent events of all sessions
- ``POST /session/{id}/prompt_async``  start a turn
- ``POST /permission/{id}/reply``      permission decisions
- ``POST /session/{id}/abort``         abort a running turn

Usage::

    async with OpenCodeClient("http://localhost:8000") as client:
        session_id = await client.create_session()
        async for event in client.run_turn(session_id, "Hello"):
            ...
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import AsyncIterator, Sequence
from typing import Any

import aiohttp
import structlog

from agentrelay.core.domain.channels import ModelRef, StreamEvent
from agentrelay.core.domain.errors import AgentClientError
from agentrelay.infrastructure.agent.sse import SseEventTranslator, parse_sse_line

logger = structlog.get_logger(__name__)

HEALTH_TIMEOUT_SECONDS = 5
SESSION_TIMEOUT_SECONDS = 30
PERMISSION_TIMEOUT_SECONDS = 10
TURN_TIMEOUT_SECONDS = 300


class OpenCodeClient:
    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        turn_timeout: float = TURN_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._turn_timeout = turn_timeout
        self._session: aiohttp.ClientSession | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> OpenCodeClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # AgentClientProtocol
    # ------------------------------------------------------------------

    async def is_ready(self) -> bool:
        session = await self._get_session()
        try:
            async with session.get(
                f"{self._base_url}/global/health",
                timeout=aiohttp.ClientTimeout(total=HEALTH_TIMEOUT_SECONDS),
            ) as resp:
                return resp.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.debug("opencode.health_check_failed", error=str(exc))
            return False

    async def create_session(self, agent_name: str | None = None) -> str:
        body: dict[str, Any] = {}
        if agent_name:
            body["agent"] = agent_name

        session = await self._get_session()
        async with session.post(
            f"{self._base_url}/session",
            json=body,
            timeout=aiohttp.ClientTimeout(total=SESSION_TIMEOUT_SECONDS),
        ) as resp:
            if resp.status >= 400:
                text = await resp.text()
                raise AgentClientError(
                    f"Failed to create session: {resp.status} {text[:200]}",
                    status_code=resp.status,
                )
            payload = await resp.json()

        session_id = payload.get("id") if isinstance(payload, dict) else None
        if not session_id:
            raise AgentClientError("Session creation response carried no id")
        logger.info("opencode.session_created", session_id=session_id, agent=agent_name)
        return session_id

    async def run_turn(
        self,
        session_id: str,
        prompt: str,
        *,
        agent_name: str | None = None,
        model: ModelRef | None = None,
        file_parts: Sequence[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Subscribe to the event stream, send the prompt, yield translated events.

        Closing the generator early closes the SSE connection.
        """
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        parts.extend(dict(part) for part in file_parts or [])
        body: dict[str, Any] = {"parts": parts}
        if agent_name:
            body["agent"] = agent_name
        if model:
            body["model"] = model.to_payload()

        session = await self._get_session()
        async with session.get(
            f"{self._base_url}/event",
            headers={"Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=self._turn_timeout),
        ) as sse:
            if sse.status >= 400:
                raise AgentClientError(
                    f"Failed to connect to event stream: {sse.status}", status_code=sse.status
                )

            async with session.post(
                f"{self._base_url}/session/{session_id}/prompt_async",
                json=body,
                timeout=aiohttp.ClientTimeout(total=SESSION_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise AgentClientError(
                        f"Failed to send prompt: {resp.status} {text[:200]}",
                        status_code=resp.status,
                    )

            translator = SseEventTranslator(session_id)
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            buffer = ""
            async for chunk in sse.content.iter_any():
                buffer += decoder.decode(chunk)
                while "\n" in buffer:
                    line, buffer = buffer.split("\n", 1)
                    payload = parse_sse_line(line)
                    if payload is None:
                        continue
                    for event in translator.translate(payload):
                        yield event
                    if translator.finished:
                        return

    async def reply_permission(self, permission_id: str, approved: bool) -> None:
        session = await self._get_session()
        async with session.post(
            f"{self._base_url}/permission/{permission_id}/reply",
            json={"approved": approved},
            timeout=aiohttp.ClientTimeout(total=PERMISSION_TIMEOUT_SECONDS),
        ) as resp:
            if resp.status >= 400:
                text = await resp.text()
                raise AgentClientError(
                    f"Permission reply failed: {resp.status} {text[:200]}",
                    status_code=resp.status,
                )
        logger.info("opencode.permission_replied", permission_id=permission_id, approved=approved)

    async def abort(self, session_id: str) -> None:
        """Ask the backend to stop a running turn (best effort)."""
        session = await self._get_session()
        try:
            async with session.post(
                f"{self._base_url}/session/{session_id}/abort",
                timeout=aiohttp.ClientTimeout(total=PERMISSION_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status >= 400:
                    logger.warning("opencode.abort_failed", session_id=session_id, status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("opencode.abort_failed", session_id=session_id, error=str(exc))
