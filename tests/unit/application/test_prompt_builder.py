"""Tests for prompt assembly and model/agent resolution."""

from agentrelay.application.prompt_builder import (
    build_file_parts,
    build_prompt,
    resolve_agent_name,
    resolve_model,
)
from agentrelay.core.domain.channels import (
    Attachment,
    ChatType,
    MessageOverrides,
    ModelRef,
    ThreadMessage,
)


class TestBuildPrompt:
    def test_sections_in_order(self, make_config, make_message) -> None:
        config = make_config(
            system_prompt="You are the support bot.",
            platform_config={"channelPrompts": {"C42": "Answer in German."}},
        )
        message = make_message(
            "Where is my order?",
            user_name="Alice",
            chat_type=ChatType.GROUP,
            group_id="C42",
            thread_context=(
                ThreadMessage(sender="Bob", text="Any news?"),
                ThreadMessage(sender="bot", text="Checking.", is_bot=True),
            ),
        )

        parts = build_prompt(config, message).split("\n\n")

        assert parts[0] == "You are the support bot."
        assert parts[1] == "[Channel-specific instructions]\nAnswer in German."
        assert parts[2].startswith("[Response format: You are responding in a slack channel.")
        assert parts[3] == "[Channel: slack | Chat: group | User: Alice]"
        assert parts[4] == (
            "--- Thread context ---\nBob: Any news?\nAssistant: Checking.\n--- End thread context ---"
        )
        assert parts[5] == "Where is my order?"

    def test_minimal_prompt_for_non_chat_platform(self, make_config, make_message) -> None:
        config = make_config(channel_type="email")
        message = make_message("Hi", channel_type="email", user_id="u@example.com")

        prompt = build_prompt(config, message)

        assert prompt == "[Channel: email | Chat: dm | User: u@example.com]\n\nHi"

    def test_channel_prompt_needs_matching_group(self, make_config, make_message) -> None:
        config = make_config(platform_config={"channelPrompts": {"C1": "Be formal."}})

        prompt = build_prompt(config, make_message(group_id="C2"))

        assert "Channel-specific" not in prompt


class TestResolveModel:
    def test_message_override_wins(self, make_config, make_message) -> None:
        override = ModelRef(provider_id="openai", model_id="gpt")
        config = make_config(metadata={"model": {"providerID": "anthropic", "modelID": "claude"}})

        model = resolve_model(config, make_message(overrides=MessageOverrides(model=override)))

        assert model == override

    def test_config_metadata_model(self, make_config, make_message) -> None:
        config = make_config(metadata={"model": {"providerID": "anthropic", "modelID": "claude"}})

        assert resolve_model(config, make_message()) == ModelRef("anthropic", "claude")

    def test_incomplete_metadata_is_ignored(self, make_config, make_message) -> None:
        config = make_config(metadata={"model": {"providerID": "anthropic", "modelID": 7}})

        assert resolve_model(config, make_message()) is None
        assert resolve_model(make_config(), make_message()) is None


def test_agent_name_override_then_config(make_config, make_message) -> None:
    config = make_config(agent_name="support")

    assert resolve_agent_name(config, make_message()) == "support"
    assert (
        resolve_agent_name(config, make_message(overrides=MessageOverrides(agent_name="qa")))
        == "qa"
    )


def test_file_parts_skip_attachments_without_url(make_message) -> None:
    message = make_message(
        attachments=(
            Attachment(type="image", url="https://x/cat.png", mime_type="image/png", name="cat.png"),
            Attachment(type="file", name="local-only.txt"),
        )
    )

    assert build_file_parts(message) == [
        {"type": "file", "mime": "image/png", "url": "https://x/cat.png", "filename": "cat.png"}
    ]
