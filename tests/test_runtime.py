"""Tests for the crew runtime wiring and stream lifecycle."""

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_message
from streamcrew.configuration.tuning_settings import StreamSettings
from streamcrew.datatypes.chat_datatypes import ChatRole
from streamcrew.datatypes.persona_datatypes import PersonaConfig, PersonaRoster
from streamcrew.runtime import CrewRuntime
from streamcrew.services.channel_session import SessionSettings


async def instant_sleep(seconds):
    await asyncio.sleep(0)


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_transport():
    transport = MagicMock()
    transport.connect = AsyncMock()
    transport.send = AsyncMock()
    transport.close = AsyncMock()
    return transport


def make_runtime(roster, *, assume_online=True, transport=None, moderation_api=None):
    persona_runtime = AsyncMock()
    persona_runtime.generate_reply.return_value = "hey there"
    persona_runtime.classify_violations.return_value = []
    moderation_api = moderation_api or AsyncMock()
    return CrewRuntime(
        roster=roster,
        persona_runtime=persona_runtime,
        transport=transport or make_transport(),
        moderation_api=moderation_api,
        channel_ids={"MyChannel": "1234"},
        settings=SessionSettings(stream=StreamSettings(assume_online=assume_online, poll_interval_seconds=0.01)),
        rng=random.Random(3),
        sleep=instant_sleep,
    )


@pytest.mark.asyncio
async def test_start_assume_online_connects_and_posts_intros(roster):
    transport = make_transport()
    runtime = make_runtime(roster, transport=transport)

    await runtime.start("#MyChannel")
    await settle()

    transport.set_message_handler.assert_called_once_with(runtime.handle_inbound)
    transport.connect.assert_awaited_once_with("#MyChannel")
    transport.send.assert_awaited_once_with("Nova", "mychannel", "hi chat")
    assert runtime.is_live
    assert runtime.evaluators["mychannel"].is_running

    await runtime.stop()


@pytest.mark.asyncio
async def test_handle_inbound_routes_to_channel_session(roster):
    transport = make_transport()
    runtime = make_runtime(roster, transport=transport)
    await runtime.start("mychannel")

    runtime.handle_inbound("#MyChannel", "viewer", "@Byte how are you", "Moderator")
    session = runtime.sessions["mychannel"]
    await session.wait_idle()
    await settle()

    line = session.window.peek()[-1]
    assert line.username == "viewer"
    assert line.role is ChatRole.MODERATOR
    assert len(session.moderation_queue) == 0
    transport.send.assert_any_await("Byte", "mychannel", "hey there")

    await runtime.stop()


@pytest.mark.asyncio
async def test_no_moderator_means_no_evaluator():
    roster = PersonaRoster([PersonaConfig(name="Solo", model="test/solo", system_prompt="You are Solo.")])
    runtime = make_runtime(roster)
    runtime.session_for("mychannel")
    assert runtime.evaluators == {}
    await runtime.stop()


@pytest.mark.asyncio
async def test_stream_offline_pauses_replies_and_moderation(roster):
    transport = make_transport()
    runtime = make_runtime(roster, transport=transport)
    await runtime.start("mychannel")
    await settle()
    transport.send.reset_mock()

    session = runtime.sessions["mychannel"]
    session.moderation_queue.enqueue(make_message("viewer", "spam spam", channel="mychannel"))

    await runtime.on_stream_offline()

    assert not runtime.is_live
    assert not session.live
    assert len(session.moderation_queue) == 0
    assert not runtime.evaluators["mychannel"].is_running

    runtime.handle_inbound("mychannel", "viewer", "@Nova hello?", "user")
    await session.wait_idle()
    await settle()
    transport.send.assert_not_awaited()
    assert len(session.window) == 1

    await runtime.on_stream_online()
    assert session.live
    assert runtime.evaluators["mychannel"].is_running

    await runtime.stop()


@pytest.mark.asyncio
async def test_start_polls_status_when_not_assumed_online(roster):
    moderation_api = AsyncMock()
    moderation_api.is_stream_online.return_value = True
    transport = make_transport()
    runtime = make_runtime(roster, assume_online=False, transport=transport, moderation_api=moderation_api)

    await runtime.start("mychannel")
    assert not runtime.sessions["mychannel"].live
    await asyncio.sleep(0.05)
    await settle()

    moderation_api.is_stream_online.assert_awaited()
    assert runtime.is_live
    transport.send.assert_any_await("Nova", "mychannel", "hi chat")

    await runtime.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_closes_transport(roster):
    transport = make_transport()
    runtime = make_runtime(roster, transport=transport)
    await runtime.start("mychannel")

    await runtime.stop(graceful=False)
    await runtime.stop()

    transport.close.assert_awaited_once()
    assert runtime.governor.metrics()["global"]["queued"] == 0
    assert not runtime.sessions["mychannel"].is_running


@pytest.mark.asyncio
async def test_inbound_after_stop_is_ignored(roster):
    runtime = make_runtime(roster)
    await runtime.stop()
    runtime.handle_inbound("mychannel", "viewer", "hello", "user")
    assert runtime.sessions == {}


@pytest.mark.asyncio
async def test_status_reports_sessions_and_moderation(roster):
    runtime = make_runtime(roster)
    await runtime.start("mychannel")
    status = runtime.status()
    assert status["live"] is True
    assert status["started_at"] is not None
    assert [s["channel"] for s in status["sessions"]] == ["mychannel"]
    assert status["moderation"] == {"mychannel": True}
    await runtime.stop()
