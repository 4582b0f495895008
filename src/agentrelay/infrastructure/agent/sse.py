"""Translate the backend agent's server-sent events into StreamEvents.

The backend publishes every session's events on one ``/event`` stream;
``SseEventTranslator`` keeps the per-turn state needed to filter and map
them for a single session.
"""

from __future__ import annotations

import json
import mimetypes
from typing import Any

from agentrelay.core.domain.channels import FileOutput, PermissionRequest, StreamEvent, StreamEventType

FILE_PRODUCING_TOOLS = {"show", "show_user", "show-user"}
FILE_ITEM_TYPES = {"file", "image"}


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Return the JSON payload of a ``data:`` line, or None."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    body = line[5:].strip()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _guess_image_mime(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    if guessed and guessed.startswith("image/"):
        return guessed
    return "image/png"


def extract_file_from_tool_output(tool_name: str, state: dict[str, Any]) -> FileOutput | None:
    """Pull the shown file out of a completed ``show`` tool call."""
    if tool_name not in FILE_PRODUCING_TOOLS:
        return None

    tool_input = state.get("input") or {}
    output = state.get("output")
    item_type = tool_input.get("type") or ""
    file_path: str | None = None
    public_url: str | None = None

    if isinstance(output, str) and output:
        try:
            entry = json.loads(output).get("entry")
        except (json.JSONDecodeError, AttributeError):
            entry = None
        if isinstance(entry, dict):
            public_url = entry.get("publicUrl")
            if entry.get("type") in FILE_ITEM_TYPES and entry.get("path"):
                file_path = entry["path"]

    if not file_path and item_type in FILE_ITEM_TYPES and tool_input.get("path"):
        file_path = tool_input["path"]

    if not (public_url or file_path):
        return None

    source = file_path or public_url or "file"
    name = source.split("/")[-1].split("?")[0] or "file"
    return FileOutput(
        name=name,
        url=public_url or file_path or "",
        mime_type=_guess_image_mime(name) if item_type == "image" else None,
    )


class SseEventTranslator:
    """Map raw backend events of one session onto StreamEvents.

    ``finished`` turns True once a terminal (done/error) event was produced.
    """

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._assistant_message_ids: set[str] = set()
        self._processed_tool_calls: set[str] = set()
        self._saw_busy = False
        self._got_text = False
        self.finished = False

    def translate(self, payload: dict[str, Any]) -> list[StreamEvent]:
        if self.finished:
            return []

        event_type = payload.get("type")
        props = payload.get("properties") or {}
        sid = (
            props.get("sessionID")
            or (props.get("part") or {}).get("sessionID")
            or (props.get("info") or {}).get("sessionID")
        )
        if sid and sid != self._session_id:
            return []

        if event_type == "message.updated":
            info = props.get("info") or {}
            if info.get("role") == "assistant" and info.get("id"):
                self._assistant_message_ids.add(info["id"])
            return []

        if event_type == "message.part.delta":
            delta = props.get("delta")
            if delta:
                self._got_text = True
                self._saw_busy = True
                return [StreamEvent.text(delta)]
            return []

        if event_type == "message.part.updated":
            return self._translate_part(props)

        if event_type in ("permission.asked", "permission.requested"):
            permission = PermissionRequest(
                id=props.get("id") or props.get("requestID") or "",
                tool=props.get("tool") or props.get("toolName") or "unknown",
                description=props.get("description") or props.get("message") or "",
            )
            return [StreamEvent(type=StreamEventType.PERMISSION, permission=permission)]

        if event_type == "session.status":
            if (props.get("status") or {}).get("type") == "busy":
                self._saw_busy = True
                return [StreamEvent.busy()]
            return []

        if event_type == "session.idle":
            # An idle event before the turn started belongs to the previous turn.
            if self._saw_busy or self._got_text:
                self.finished = True
                return [StreamEvent.done()]
            return []

        if event_type == "session.error":
            error = ((props.get("error") or {}).get("data") or {}).get("message")
            self.finished = True
            return [StreamEvent.error(error or "unknown error")]

        return []

    def _translate_part(self, props: dict[str, Any]) -> list[StreamEvent]:
        part = props.get("part") or {}
        message_id = part.get("messageID")
        if message_id and message_id not in self._assistant_message_ids:
            return []

        part_type = part.get("type")
        delta = props.get("delta")

        if part_type == "text" and delta:
            self._got_text = True
            self._saw_busy = True
            return [StreamEvent.text(delta)]

        if part_type == "file":
            file = FileOutput(
                name=part.get("filename") or "file",
                url=part.get("url") or "",
                mime_type=part.get("mimeType"),
            )
            return [StreamEvent(type=StreamEventType.FILE, file=file)]

        if part_type == "tool":
            tool_name = part.get("tool") or ""
            call_id = part.get("callID") or part.get("id")
            state = part.get("state") or {}
            if (
                tool_name in FILE_PRODUCING_TOOLS
                and state.get("status") == "completed"
                and call_id
                and call_id not in self._processed_tool_calls
            ):
                self._processed_tool_calls.add(call_id)
                file = extract_file_from_tool_output(tool_name, state)
                if file is not None:
                    return [StreamEvent(type=StreamEventType.FILE, file=file)]
        return []
