"""Domain models for channel relaying.

All structured types that flow between chat-platform adapters, the
orchestration core and the backend agent: normalized messages, channel
configurations, stream events, permission requests and results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Chat platforms a channel configuration can target."""

    TELEGRAM = "telegram"
    SLACK = "slack"
    DISCORD = "discord"
    WHATSAPP = "whatsapp"
    TEAMS = "teams"
    VOICE = "voice"
    EMAIL = "email"
    SMS = "sms"


class SessionStrategy(str, Enum):
    """Granularity at which conversations share a backend agent session."""

    SINGLE = "single"
    PER_THREAD = "per-thread"
    PER_USER = "per-user"
    PER_MESSAGE = "per-message"


class ChatType(str, Enum):
    DM = "dm"
    GROUP = "group"
    CHANNEL = "channel"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


@dataclass(frozen=True)
class PlatformUser:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Attachment:
    """File attached to an inbound message."""

    type: str
    url: str | None = None
    mime_type: str | None = None
    name: str | None = None
    size: int | None = None


@dataclass(frozen=True)
class ThreadMessage:
    """Earlier message in the same thread, passed along as context."""

    sender: str
    text: str
    is_bot: bool = False


@dataclass(frozen=True)
class ModelRef:
    provider_id: str
    model_id: str

    def to_payload(self) -> dict[str, str]:
        return {"providerID": self.provider_id, "modelID": self.model_id}


@dataclass(frozen=True)
class MessageOverrides:
    """Per-message routing overrides for model or agent."""

    model: ModelRef | None = None
    agent_name: str | None = None


@dataclass(frozen=True)
class NormalizedMessage:
    """Platform-agnostic inbound message.

    Produced by a channel adapter from a verified webhook payload.

    Attributes:
        external_id: Platform message identifier (unique per message).
        channel_type: Platform the message came from.
        channel_config_id: Channel configuration that received it.
        chat_type: Direct message, group or channel.
        content: Message text.
        platform_user: Sender on the platform.
        attachments: Files attached to the message.
        thread_id: Thread identifier, if the platform has threads.
        group_id: Group/channel identifier, if any.
        is_mention: Whether the bot was explicitly mentioned.
        thread_context: Earlier messages in the thread.
        overrides: Per-message model/agent overrides.
        raw: Original platform payload, opaque to the core.
    """

    external_id: str
    channel_type: str
    channel_config_id: str
    content: str
    platform_user: PlatformUser
    chat_type: ChatType = ChatType.DM
    attachments: tuple[Attachment, ...] = ()
    thread_id: str | None = None
    group_id: str | None = None
    is_mention: bool = False
    thread_context: tuple[ThreadMessage, ...] = ()
    overrides: MessageOverrides | None = None
    raw: Any = None


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration of one channel the relay serves.

    Attributes:
        id: Unique channel configuration id.
        channel_type: Platform served by this configuration.
        name: Human-readable name.
        enabled: Disabled configurations receive no traffic.
        session_strategy: How conversations map onto agent sessions.
        system_prompt: Prepended to every prompt, if set.
        agent_name: Backend agent to pin sessions to, if set.
        platform_config: Platform-specific settings (e.g. ``channelPrompts``).
        metadata: Free-form extras (e.g. default ``model``).
    """

    id: str
    channel_type: str
    name: str = ""
    enabled: bool = True
    session_strategy: SessionStrategy = SessionStrategy.PER_USER
    system_prompt: str | None = None
    agent_name: str | None = None
    platform_config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PermissionRequest:
    """Approval the backend agent needs before running a risky tool."""

    id: str
    tool: str = "unknown"
    description: str = ""


@dataclass(frozen=True)
class FileOutput:
    name: str
    url: str
    mime_type: str | None = None


@dataclass(frozen=True)
class ToolActivity:
    """Tool activity notice emitted while a turn is running."""

    tool: str
    status: str | None = None
    title: str | None = None
    call_id: str | None = None


class StreamEventType(str, Enum):
    TEXT = "text"
    BUSY = "busy"
    DONE = "done"
    ERROR = "error"
    PERMISSION = "permission"
    FILE = "file"


@dataclass(frozen=True)
class StreamEvent:
    """One event of a backend turn's event stream.

    ``data`` carries the text delta (``text``) or the error message
    (``error``); ``permission`` and ``file`` carry their payloads.
    """

    type: StreamEventType
    data: str | None = None
    permission: PermissionRequest | None = None
    file: FileOutput | None = None

    @classmethod
    def text(cls, data: str) -> StreamEvent:
        return cls(type=StreamEventType.TEXT, data=data)

    @classmethod
    def busy(cls) -> StreamEvent:
        return cls(type=StreamEventType.BUSY)

    @classmethod
    def done(cls) -> StreamEvent:
        return cls(type=StreamEventType.DONE)

    @classmethod
    def error(cls, data: str | None = None) -> StreamEvent:
        return cls(type=StreamEventType.ERROR, data=data)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check."""

    allowed: bool
    retry_after_ms: int | None = None


@dataclass(frozen=True)
class PersistedSession:
    """Durable mapping of a routing key to a backend session.

    ``session_key`` is globally unique; writers upsert on it.
    """

    id: str
    config_id: str
    session_key: str
    backend_session_id: str
    created_at: datetime
    last_used_at: datetime


@dataclass(frozen=True)
class AgentResponse:
    """Final agent reply handed to the channel adapter."""

    content: str
    session_id: str
    truncated: bool = False
    model_name: str = "default"
    duration_ms: int = 0


@dataclass(frozen=True)
class MessageRecord:
    """Logged inbound or outbound channel message."""

    config_id: str
    direction: MessageDirection
    content: str
    created_at: datetime
    external_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    user_name: str | None = None


class ProcessStatus(str, Enum):
    COMPLETED = "completed"
    RATE_LIMITED = "rate_limited"
    NO_CONFIG = "no_config"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessResult:
    """Result of handing one inbound message to the engine.

    Attributes:
        status: Terminal status of the message.
        retry_after_ms: Set when the message was rate limited.
        error: Failure description when status is ``failed``.
    """

    status: ProcessStatus
    retry_after_ms: int | None = None
    error: str | None = None
