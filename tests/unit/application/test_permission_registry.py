"""Tests for PermissionRegistry and the permission EventBridge."""

import asyncio

import pytest

from agentrelay.application.event_bridge import EventBridge
from agentrelay.application.permission_registry import PermissionRegistry
from agentrelay.core.domain.channels import PermissionRequest


class FakeAgentClient:
    def __init__(self, *, fail: bool = False) -> None:
        self.replies: list[tuple[str, bool]] = []
        self._fail = fail

    async def reply_permission(self, permission_id: str, approved: bool) -> None:
        self.replies.append((permission_id, approved))
        if self._fail:
            raise ConnectionError("backend down")


class FakePromptAdapter:
    """Records prompts and optionally answers them through the registry."""

    def __init__(
        self,
        registry: PermissionRegistry | None = None,
        *,
        answer: bool | None = None,
        fail: bool = False,
    ) -> None:
        self.prompts: list[PermissionRequest] = []
        self._registry = registry
        self._answer = answer
        self._fail = fail

    async def send_permission_request(self, config, message, permission) -> None:
        if self._fail:
            raise RuntimeError("chat API error")
        self.prompts.append(permission)
        if self._registry is not None and self._answer is not None:
            asyncio.get_running_loop().call_soon(
                self._registry.reply, permission.id, self._answer
            )


class TestPermissionRegistry:
    @pytest.mark.asyncio
    async def test_reply_resolves_pending_request(self) -> None:
        registry = PermissionRegistry()
        decision = registry.register("p1")

        assert registry.is_pending("p1")
        assert registry.reply("p1", True) is True
        assert await decision is True
        assert not registry.is_pending("p1")

    @pytest.mark.asyncio
    async def test_reply_unknown_id_returns_false(self) -> None:
        registry = PermissionRegistry()

        assert registry.reply("missing", True) is False

    @pytest.mark.asyncio
    async def test_second_reply_is_ignored(self) -> None:
        registry = PermissionRegistry()
        decision = registry.register("p1")

        assert registry.reply("p1", False) is True
        assert registry.reply("p1", True) is False
        assert await decision is False

    @pytest.mark.asyncio
    async def test_register_supersedes_existing_entry(self) -> None:
        registry = PermissionRegistry()
        first = registry.register("p1")
        second = registry.register("p1")

        assert await first is False
        assert registry.pending_count() == 1

        registry.reply("p1", True)
        assert await second is True

    @pytest.mark.asyncio
    async def test_unanswered_request_expires_as_denied(self) -> None:
        registry = PermissionRegistry(timeout_seconds=0.02)
        decision = registry.register("p1")

        assert await asyncio.wait_for(decision, timeout=1) is False
        assert not registry.is_pending("p1")
        assert registry.reply("p1", True) is False

    @pytest.mark.asyncio
    async def test_expiry_of_superseded_entry_leaves_new_one(self) -> None:
        registry = PermissionRegistry(timeout_seconds=0.2)
        registry.register("p1")
        await asyncio.sleep(0.12)
        second = registry.register("p1")
        await asyncio.sleep(0.12)

        # The first entry's original deadline has passed.
        assert registry.is_pending("p1")
        assert not second.done()
        registry.reply("p1", True)
        assert await second is True

    @pytest.mark.asyncio
    async def test_cancel_all_denies_everything(self) -> None:
        registry = PermissionRegistry()
        decisions = [registry.register(f"p{i}") for i in range(3)]

        registry.cancel_all()

        assert [await d for d in decisions] == [False, False, False]
        assert registry.pending_count() == 0


class TestEventBridge:
    @pytest.mark.asyncio
    async def test_approval_is_relayed_to_backend(self, make_config, make_message) -> None:
        registry = PermissionRegistry()
        client = FakeAgentClient()
        adapter = FakePromptAdapter(registry, answer=True)
        permission = PermissionRequest(id="p1", tool="bash", description="rm -rf build")

        approved = await EventBridge(registry).handle_permission_event(
            make_config(), make_message(), permission, adapter, client
        )

        assert approved is True
        assert adapter.prompts == [permission]
        assert client.replies == [("p1", True)]

    @pytest.mark.asyncio
    async def test_rejection_is_relayed_to_backend(self, make_config, make_message) -> None:
        registry = PermissionRegistry()
        client = FakeAgentClient()
        adapter = FakePromptAdapter(registry, answer=False)

        approved = await EventBridge(registry).handle_permission_event(
            make_config(), make_message(), PermissionRequest(id="p1"), adapter, client
        )

        assert approved is False
        assert client.replies == [("p1", False)]

    @pytest.mark.asyncio
    async def test_prompt_failure_denies_without_waiting(self, make_config, make_message) -> None:
        registry = PermissionRegistry(timeout_seconds=60)
        client = FakeAgentClient()
        adapter = FakePromptAdapter(fail=True)

        approved = await asyncio.wait_for(
            EventBridge(registry).handle_permission_event(
                make_config(), make_message(), PermissionRequest(id="p1"), adapter, client
            ),
            timeout=1,
        )

        assert approved is False
        assert client.replies == [("p1", False)]
        assert registry.pending_count() == 0

    @pytest.mark.asyncio
    async def test_timeout_relays_denial(self, make_config, make_message) -> None:
        registry = PermissionRegistry(timeout_seconds=0.02)
        client = FakeAgentClient()

        approved = await EventBridge(registry).handle_permission_event(
            make_config(), make_message(), PermissionRequest(id="p1"), FakePromptAdapter(), client
        )

        assert approved is False
        assert client.replies == [("p1", False)]

    @pytest.mark.asyncio
    async def test_relay_failure_is_swallowed(self, make_config, make_message) -> None:
        registry = PermissionRegistry()
        client = FakeAgentClient(fail=True)
        adapter = FakePromptAdapter(registry, answer=True)

        approved = await EventBridge(registry).handle_permission_event(
            make_config(), make_message(), PermissionRequest(id="p1"), adapter, client
        )

        assert approved is True
        assert client.replies == [("p1", True)]

    @pytest.mark.asyncio
    async def test_cancelled_wait_relays_denial(self, make_config, make_message) -> None:
        registry = PermissionRegistry(timeout_seconds=60)
        client = FakeAgentClient()
        task = asyncio.create_task(
            EventBridge(registry).handle_permission_event(
                make_config(), make_message(), PermissionRequest(id="p1"), FakePromptAdapter(), client
            )
        )
        for _ in range(50):
            if registry.is_pending("p1"):
                break
            await asyncio.sleep(0.01)
        assert registry.is_pending("p1")

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert client.replies == [("p1", False)]
        assert registry.pending_count() == 0
        assert registry.reply("p1", True) is False
