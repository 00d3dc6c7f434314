"""Tests for the dispatcher worker loop and per-message handling."""

import asyncio
import logging

import pytest

import herald.worker as worker_mod
from herald.core.exceptions import ChannelUnavailable, ConfigurationError, StoreUnavailable
from herald.schemas.push import Payload, TargetedIntent
from herald.services.dispatcher import DispatchSummary

RAW_TARGETED = '{"type": "targeted", "userIds": ["A"], "notification": {"title": "t", "body": "b"}}'


class RecordingDispatcher:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.intents: list = []

    async def dispatch(self, intent):
        self.intents.append(intent)
        if self.error:
            raise self.error
        return DispatchSummary(mode=intent.type, resolved=1, delivered=1)


@pytest.mark.asyncio
async def test_process_message_dispatches_valid_intent():
    dispatcher = RecordingDispatcher()
    summary = await worker_mod.process_message(dispatcher, RAW_TARGETED)

    assert summary.delivered == 1
    assert dispatcher.intents == [TargetedIntent(userIds=["A"], notification=Payload(title="t", body="b"))]


@pytest.mark.asyncio
async def test_process_message_drops_malformed_intent(caplog):
    dispatcher = RecordingDispatcher()
    with caplog.at_level(logging.ERROR, logger="herald.worker"):
        assert await worker_mod.process_message(dispatcher, '{"type": "targeted"}') is None

    assert dispatcher.intents == []
    assert "Discarding malformed intent" in caplog.text


@pytest.mark.asyncio
async def test_process_message_logs_configuration_error(caplog):
    dispatcher = RecordingDispatcher(error=ConfigurationError("VAPID keys not configured"))
    with caplog.at_level(logging.ERROR, logger="herald.worker"):
        assert await worker_mod.process_message(dispatcher, RAW_TARGETED) is None

    assert "VAPID keys not configured" in caplog.text


@pytest.mark.asyncio
async def test_process_message_survives_store_outage(caplog):
    dispatcher = RecordingDispatcher(error=StoreUnavailable("store down"))
    with caplog.at_level(logging.ERROR, logger="herald.worker"):
        assert await worker_mod.process_message(dispatcher, RAW_TARGETED) is None

    assert "Failed to process targeted intent" in caplog.text


@pytest.mark.asyncio
async def test_run_worker_processes_queue_until_stopped(monkeypatch):
    stop = asyncio.Event()
    queue = [RAW_TARGETED, None, RAW_TARGETED]
    processed: list[str] = []
    purges: list[int] = []

    class FakeRegistry:
        def __init__(self, session_factory):
            pass

        def purge_expired(self):
            purges.append(1)
            return 0

    async def fake_pop(timeout):
        return queue.pop(0) if queue else None

    async def fake_process(dispatcher, raw):
        processed.append(raw)
        if len(processed) == 2:
            stop.set()

    async def noop():
        return None

    async def connected():
        return True

    monkeypatch.setattr(worker_mod, "SubscriptionRegistry", FakeRegistry)
    monkeypatch.setattr(worker_mod, "pop_intent", fake_pop)
    monkeypatch.setattr(worker_mod, "process_message", fake_process)
    monkeypatch.setattr(worker_mod, "connect_redis", connected)
    monkeypatch.setattr(worker_mod, "close_redis", noop)
    monkeypatch.setattr(worker_mod, "get_redis", lambda: object())

    await asyncio.wait_for(worker_mod.run_worker(stop), timeout=5)

    assert processed == [RAW_TARGETED, RAW_TARGETED]
    assert purges == [1]


@pytest.mark.asyncio
async def test_run_worker_reconnects_only_while_channel_is_down(monkeypatch):
    stop = asyncio.Event()
    state = {"up": False, "connects": 0, "pops": 0}
    processed: list[str] = []

    class FakeRegistry:
        def __init__(self, session_factory):
            pass

        def purge_expired(self):
            return 0

    async def fake_connect():
        state["connects"] += 1
        # down for the startup attempt and the first retry
        state["up"] = state["connects"] >= 3
        return state["up"]

    def fake_mark_down():
        state["up"] = False

    async def fake_pop(timeout):
        state["pops"] += 1
        if state["pops"] == 2:
            raise ChannelUnavailable("Failed to read intent queue: Connection reset")
        return RAW_TARGETED

    async def fake_process(dispatcher, raw):
        processed.append(raw)
        if len(processed) == 3:
            stop.set()

    async def noop():
        return None

    monkeypatch.setattr(worker_mod, "CHANNEL_RETRY_DELAY", 0)
    monkeypatch.setattr(worker_mod, "SubscriptionRegistry", FakeRegistry)
    monkeypatch.setattr(worker_mod, "connect_redis", fake_connect)
    monkeypatch.setattr(worker_mod, "mark_redis_down", fake_mark_down)
    monkeypatch.setattr(worker_mod, "get_redis", lambda: object() if state["up"] else None)
    monkeypatch.setattr(worker_mod, "pop_intent", fake_pop)
    monkeypatch.setattr(worker_mod, "process_message", fake_process)
    monkeypatch.setattr(worker_mod, "close_redis", noop)

    await asyncio.wait_for(worker_mod.run_worker(stop), timeout=5)

    # startup + one failed retry + one success, then one more after the pop failure
    assert state["connects"] == 4
    assert state["pops"] == 4
    assert processed == [RAW_TARGETED] * 3
