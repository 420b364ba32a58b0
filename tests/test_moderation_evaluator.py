"""Tests for the moderation evaluator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import make_message
from streamcrew.configuration.tuning_settings import ModerationSettings
from streamcrew.datatypes.chat_datatypes import ChatRole
from streamcrew.datatypes.moderation_datatypes import Violation
from streamcrew.errors import ClassifierError, TimeoutApiError, UserResolutionFailed
from streamcrew.moderation.moderation_evaluator import ModerationEvaluator, clamp_timeout
from streamcrew.moderation.moderation_queue import ModerationQueue


def make_evaluator(roster, queue, runtime, api, action_log=None, **settings):
    return ModerationEvaluator(
        channel="testchannel",
        channel_id="1234",
        moderator=roster.moderator,
        persona_names=roster.names,
        queue=queue,
        runtime=runtime,
        moderation_api=api,
        settings=ModerationSettings(**settings),
        action_log=action_log,
    )


def make_api():
    api = AsyncMock()
    api.resolve_user_id.side_effect = lambda username: f"id-{username.lower()}"
    return api


class TestClampTimeout:
    def test_clamps_to_max(self):
        assert clamp_timeout(600, 60) == 60

    def test_keeps_values_in_range(self):
        assert clamp_timeout(30, 60) == 30

    def test_minimum_is_one_second(self):
        assert clamp_timeout(0, 60) == 1
        assert clamp_timeout(-5, 60) == 1


@pytest.mark.asyncio
async def test_flush_executes_clamped_timeout(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("Spammer", "BUY FOLLOWERS"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("spammer", "spam", 600)]
    api = make_api()
    action_log = AsyncMock()

    evaluator = make_evaluator(roster, queue, runtime, api, action_log=action_log, max_timeout_seconds=60)
    executed = await evaluator.flush()

    assert executed == 1
    api.resolve_user_id.assert_awaited_once_with("Spammer")
    api.timeout_user.assert_awaited_once_with("1234", "id-spammer", 60, "spam")
    record = action_log.record_timeout.await_args.args[0]
    assert record.username == "Spammer"
    assert record.duration_seconds == 60
    assert record.moderator == "Warden"


@pytest.mark.asyncio
async def test_queue_cleared_at_hand_off(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "hello"))
    seen_lengths = []

    async def classify(persona, batch):
        seen_lengths.append(len(queue))
        return []

    runtime = AsyncMock()
    runtime.classify_violations.side_effect = classify

    evaluator = make_evaluator(roster, queue, runtime, make_api())
    await evaluator.flush()

    assert seen_lengths == [0]
    batch = runtime.classify_violations.await_args.args[1]
    assert [m.username for m in batch] == ["viewer"]


@pytest.mark.asyncio
async def test_empty_queue_skips_classification(roster):
    runtime = AsyncMock()
    evaluator = make_evaluator(roster, ModerationQueue(), runtime, make_api())
    assert await evaluator.flush() == 0
    runtime.classify_violations.assert_not_awaited()


@pytest.mark.asyncio
async def test_classifier_error_drops_batch(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "something"))
    runtime = AsyncMock()
    runtime.classify_violations.side_effect = ClassifierError("bad json")
    api = make_api()

    evaluator = make_evaluator(roster, queue, runtime, api)
    assert await evaluator.flush() == 0
    assert len(queue) == 0
    api.timeout_user.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolution_failure_only_skips_that_violation(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("ghost", "rude"))
    queue.enqueue(make_message("troll", "ruder"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [
        Violation("ghost", "rude", 30),
        Violation("troll", "ruder", 45),
    ]
    api = AsyncMock()

    async def resolve(username):
        if username == "ghost":
            raise UserResolutionFailed(username)
        return "id-troll"

    api.resolve_user_id.side_effect = resolve

    evaluator = make_evaluator(roster, queue, runtime, api)
    assert await evaluator.flush() == 1
    api.timeout_user.assert_awaited_once_with("1234", "id-troll", 45, "ruder")


@pytest.mark.asyncio
async def test_timeout_api_error_is_isolated(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("a", "x"))
    queue.enqueue(make_message("b", "y"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("a", "r", 10), Violation("b", "r", 10)]
    api = make_api()

    async def timeout(channel_id, user_id, duration, reason):
        if user_id == "id-a":
            raise TimeoutApiError("403")

    api.timeout_user.side_effect = timeout

    evaluator = make_evaluator(roster, queue, runtime, api)
    assert await evaluator.flush() == 1
    assert api.timeout_user.await_count == 2


@pytest.mark.asyncio
async def test_persona_targets_are_ignored(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "@Nova you suck"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("Nova", "self report", 30)]
    api = make_api()

    evaluator = make_evaluator(roster, queue, runtime, api)
    assert await evaluator.flush() == 0
    api.resolve_user_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_violation_without_matching_message_is_skipped(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "hello"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("someone_else", "made up", 30)]
    api = make_api()

    evaluator = make_evaluator(roster, queue, runtime, api)
    assert await evaluator.flush() == 0
    api.timeout_user.assert_not_awaited()


@pytest.mark.asyncio
async def test_action_log_failure_does_not_fail_flush(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "spam"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("viewer", "spam", 10)]
    action_log = AsyncMock()
    action_log.record_timeout.side_effect = RuntimeError("disk full")

    evaluator = make_evaluator(roster, queue, runtime, make_api(), action_log=action_log)
    assert await evaluator.flush() == 1


@pytest.mark.asyncio
async def test_periodic_loop_flushes_and_shuts_down(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("viewer", "spam", ChatRole.USER))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = []

    evaluator = make_evaluator(roster, queue, runtime, make_api(), flush_interval_seconds=0.01)
    evaluator.start()
    assert evaluator.is_running

    for _ in range(50):
        if runtime.classify_violations.await_count:
            break
        await asyncio.sleep(0.01)

    await evaluator.shutdown()
    assert not evaluator.is_running
    runtime.classify_violations.assert_awaited()


@pytest.mark.asyncio
async def test_shutdown_lets_in_flight_timeout_complete(roster):
    queue = ModerationQueue()
    queue.enqueue(make_message("Spammer", "BUY FOLLOWERS"))
    runtime = AsyncMock()
    runtime.classify_violations.return_value = [Violation("Spammer", "spam", 30)]
    api = make_api()
    started = asyncio.Event()
    outcome = []

    async def slow_timeout(channel_id, user_id, duration, reason):
        started.set()
        try:
            await asyncio.sleep(0.2)
        except asyncio.CancelledError:
            outcome.append("cancelled")
            raise
        outcome.append("completed")

    api.timeout_user.side_effect = slow_timeout

    evaluator = make_evaluator(roster, queue, runtime, api, flush_interval_seconds=0.01)
    evaluator.start()
    await asyncio.wait_for(started.wait(), timeout=1)

    await evaluator.shutdown()

    assert outcome == ["completed"]
    assert not evaluator.is_running
