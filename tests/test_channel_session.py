"""Tests for the channel session dispatch pipeline."""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from conftest import make_message
from streamcrew.configuration.tuning_settings import OrchestratorSettings, StreamSettings
from streamcrew.datatypes.chat_datatypes import ChatRole, ResponsePriority
from streamcrew.errors import CompletionCallFailed, PersonaNotFound
from streamcrew.orchestration.concurrency_governor import ConcurrencyGovernor
from streamcrew.services.channel_session import ChannelSession, SessionSettings


async def instant_sleep(seconds):
    await asyncio.sleep(0)


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_session(roster, runtime=None, transport=None, **orchestrator):
    if runtime is None:
        runtime = AsyncMock()
        runtime.generate_reply.return_value = "hello!"
    settings = SessionSettings(
        orchestrator=OrchestratorSettings(**orchestrator),
        stream=StreamSettings(intro_stagger_ms=3000),
    )
    return ChannelSession(
        channel="mychannel",
        roster=roster,
        runtime=runtime,
        transport=transport or AsyncMock(),
        governor=ConcurrencyGovernor(sleep=instant_sleep),
        settings=settings,
        rng=random.Random(1),
    )


@pytest.mark.asyncio
async def test_mention_triggers_reply(roster):
    transport = AsyncMock()
    session = make_session(roster, transport=transport)

    responses = session.process(make_message("viewer", "hey @Nova what's up"))
    await settle()

    assert [(r.persona_name, r.priority) for r in responses] == [("Nova", ResponsePriority.HIGH)]
    transport.send.assert_awaited_once_with("Nova", "mychannel", "hello!")
    assert session.replies_sent == 1


@pytest.mark.asyncio
async def test_reply_context_excludes_trigger(roster):
    runtime = AsyncMock()
    runtime.generate_reply.return_value = "sure"
    session = make_session(roster, runtime=runtime)

    session.process(make_message("alice", "first line"))
    session.process(make_message("bob", "@Byte hi"))
    await settle()

    persona, trigger_text, context = runtime.generate_reply.await_args.args
    assert persona.name == "Byte"
    assert trigger_text == "bob: @Byte hi"
    assert [m.username for m in context] == ["alice"]


@pytest.mark.asyncio
async def test_self_mention_yields_no_responses(roster):
    transport = AsyncMock()
    session = make_session(roster, transport=transport, respond_to_personas=True, greeting_chance=0.0)

    responses = session.process(make_message("Nova", "I am @Nova"))
    await settle()

    assert responses == []
    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_persona_messages_never_trigger_replies_by_default(roster):
    transport = AsyncMock()
    session = make_session(roster, transport=transport, greeting_chance=1.0)

    assert session.process(make_message("Byte", "hey @Nova")) == []
    await settle()
    transport.send.assert_not_awaited()
    assert session.tracker.snapshot().messages_since_last_response == 0
    assert len(session.window) == 1


@pytest.mark.asyncio
async def test_persona_to_persona_when_enabled(roster):
    session = make_session(roster, respond_to_personas=True)
    responses = session.process(make_message("Byte", "@Nova your turn"))
    assert [r.persona_name for r in responses] == ["Nova"]


@pytest.mark.asyncio
async def test_only_eligible_messages_are_queued_for_moderation(roster):
    session = make_session(roster)
    session.process(make_message("viewer", "hello"))
    session.process(make_message("mod", "hello", ChatRole.MODERATOR))
    session.process(make_message("streamer", "hello", ChatRole.BROADCASTER))
    session.process(make_message("Warden", "hello"))

    assert [m.username for m in session.moderation_queue.snapshot()] == ["viewer"]
    assert len(session.window) == 4


@pytest.mark.asyncio
async def test_offline_session_records_but_does_not_reply(roster):
    transport = AsyncMock()
    session = make_session(roster, transport=transport)
    session.live = False

    assert session.process(make_message("viewer", "@Nova hi")) == []
    await settle()

    transport.send.assert_not_awaited()
    assert len(session.window) == 1
    assert len(session.moderation_queue) == 0


@pytest.mark.asyncio
async def test_failed_completion_sends_nothing(roster):
    runtime = AsyncMock()
    runtime.generate_reply.side_effect = CompletionCallFailed("boom")
    transport = AsyncMock()
    session = make_session(roster, runtime=runtime, transport=transport)

    session.process(make_message("viewer", "@Nova hi"))
    await settle()

    transport.send.assert_not_awaited()
    assert session.replies_sent == 0


@pytest.mark.asyncio
async def test_empty_reply_sends_nothing(roster):
    runtime = AsyncMock()
    runtime.generate_reply.return_value = ""
    transport = AsyncMock()
    session = make_session(roster, runtime=runtime, transport=transport)

    session.process(make_message("viewer", "@Nova hi"))
    await settle()
    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatch_loop_preserves_order(roster):
    runtime = AsyncMock()
    runtime.generate_reply.return_value = "ok"
    session = make_session(roster, runtime=runtime)
    session.start()
    try:
        session.submit(make_message("a", "one"))
        session.submit(make_message("b", "two"))
        session.submit(make_message("c", "@Byte three"))
        await session.wait_idle()
        assert [m.username for m in session.window.peek()] == ["a", "b", "c"]
        assert session.messages_seen == 3
    finally:
        await session.stop()


@pytest.mark.asyncio
async def test_post_intros_are_staggered(roster):
    transport = AsyncMock()
    delays = []

    async def recording_sleep(seconds):
        delays.append(seconds)

    session = make_session(roster, transport=transport)
    session._governor = ConcurrencyGovernor(sleep=recording_sleep)

    assert session.post_intros() == 1
    await settle()

    transport.send.assert_awaited_once_with("Nova", "mychannel", "hi chat")
    assert delays == []


@pytest.mark.asyncio
async def test_say_sends_immediately_and_validates_persona(roster):
    transport = AsyncMock()
    session = make_session(roster, transport=transport)

    await session.say("byte", "manual line")
    transport.send.assert_awaited_once_with("Byte", "mychannel", "manual line")

    with pytest.raises(PersonaNotFound):
        await session.say("ghost", "boo")


@pytest.mark.asyncio
async def test_status_reports_counters(roster):
    session = make_session(roster)
    session.process(make_message("viewer", "hello there"))
    status = session.status()
    assert status["channel"] == "mychannel"
    assert status["messages_seen"] == 1
    assert status["moderation_queue"] == 1
    assert status["conversation_active"] is True
