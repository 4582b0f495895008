"""Assemble the backend prompt for an inbound channel message.

Sections, in order and separated by blank lines:

1. The channel's system prompt.
2. Channel-specific instructions (``platform_config["channelPrompts"][group_id]``).
3. A brevity instruction on chat-style platforms.
4. A metadata line naming channel, chat type and user.
5. The thread context, if the adapter supplied one.
6. The message itself.
"""

from __future__ import annotations

from typing import Any

from agentrelay.core.domain.channels import (
    ChannelConfig,
    ChannelType,
    ModelRef,
    NormalizedMessage,
)

_CHAT_STYLE_CHANNELS = {ChannelType.SLACK.value, ChannelType.TELEGRAM.value}

_FORMAT_INSTRUCTION = (
    "[Response format: You are responding in a {channel} channel. Keep responses "
    "short and concise: brief paragraphs and short bullet points, no verbose "
    "explanations. No headers unless truly needed. When generating files, use the "
    "show tool to attach them.]"
)


def _enum_value(value: Any) -> str:
    return getattr(value, "value", value)


def build_prompt(config: ChannelConfig, message: NormalizedMessage) -> str:
    parts: list[str] = []

    if config.system_prompt:
        parts.append(config.system_prompt)

    if message.group_id:
        channel_prompts = config.platform_config.get("channelPrompts")
        if isinstance(channel_prompts, dict):
            channel_prompt = channel_prompts.get(message.group_id)
            if channel_prompt:
                parts.append(f"[Channel-specific instructions]\n{channel_prompt}")

    channel = _enum_value(config.channel_type)
    if channel in _CHAT_STYLE_CHANNELS:
        parts.append(_FORMAT_INSTRUCTION.format(channel=channel))

    user_name = message.platform_user.name or message.platform_user.id
    parts.append(
        f"[Channel: {channel} | Chat: {_enum_value(message.chat_type)} | User: {user_name}]"
    )

    if message.thread_context:
        lines = [
            f"{'Assistant' if entry.is_bot else entry.sender}: {entry.text}"
            for entry in message.thread_context
        ]
        parts.append(
            "--- Thread context ---\n" + "\n".join(lines) + "\n--- End thread context ---"
        )

    parts.append(message.content)
    return "\n\n".join(parts)


def resolve_model(config: ChannelConfig, message: NormalizedMessage) -> ModelRef | None:
    """Per-message override first, then the config's ``metadata["model"]``."""
    if message.overrides and message.overrides.model:
        return message.overrides.model

    model = config.metadata.get("model")
    if isinstance(model, dict):
        provider_id = model.get("providerID")
        model_id = model.get("modelID")
        if isinstance(provider_id, str) and isinstance(model_id, str):
            return ModelRef(provider_id=provider_id, model_id=model_id)
    return None


def resolve_agent_name(config: ChannelConfig, message: NormalizedMessage) -> str | None:
    if message.overrides and message.overrides.agent_name:
        return message.overrides.agent_name
    return config.agent_name


def build_file_parts(message: NormalizedMessage) -> list[dict[str, Any]]:
    """Attachments with a URL, in the backend's file-part shape."""
    return [
        {
            "type": "file",
            "mime": attachment.mime_type or "application/octet-stream",
            "url": attachment.url,
            "filename": attachment.name,
        }
        for attachment in message.attachments
        if attachment.url
    ]
