"""
Tests for the cooperative poll loop.
"""

import asyncio
import time

import pytest

from guibridge.core.polling import PollEngine
from guibridge.errors import NotFound, WaitCancelled, WaitTimeout


def test_already_true_predicate_returns_without_sleeping():
    calls = []

    async def predicate():
        calls.append(1)
        return True, "ready"

    start = time.monotonic()
    result = asyncio.run(PollEngine().wait_until(predicate, timeout=5.0, interval=1.0))
    assert result == "ready"
    assert calls == [1]
    assert time.monotonic() - start < 0.5


def test_predicate_becomes_true_after_a_few_ticks():
    state = {"n": 0}

    async def predicate():
        state["n"] += 1
        return state["n"] >= 3, state["n"]

    assert asyncio.run(PollEngine().wait_until(predicate, timeout=2.0, interval=0.01)) == 3


def test_always_false_times_out_within_budget():
    async def predicate():
        return False, "still waiting"

    start = time.monotonic()
    with pytest.raises(WaitTimeout) as excinfo:
        asyncio.run(PollEngine().wait_until(predicate, timeout=0.2, interval=0.05))
    elapsed = time.monotonic() - start
    assert elapsed < 0.2 + 0.05 + 0.2
    assert excinfo.value.observation == "still waiting"
    assert excinfo.value.code == "timeout"


def test_predicate_errors_count_as_not_yet():
    async def predicate():
        raise NotFound("Element 7 not found")

    with pytest.raises(WaitTimeout) as excinfo:
        asyncio.run(PollEngine().wait_until(predicate, timeout=0.05, interval=0.01))
    assert excinfo.value.observation == {"error": "not_found", "message": "Element 7 not found"}


def test_cancel_event_aborts_a_sleeping_wait():
    async def predicate():
        return False, None

    async def scenario():
        cancel = asyncio.Event()
        wait = asyncio.create_task(PollEngine().wait_until(predicate, timeout=10.0, interval=5.0, cancel=cancel))
        await asyncio.sleep(0.05)
        cancel.set()
        return await wait

    start = time.monotonic()
    with pytest.raises(WaitCancelled):
        asyncio.run(scenario())
    assert time.monotonic() - start < 2.0


def test_interval_must_be_positive():
    async def predicate():
        return True, None

    with pytest.raises(ValueError):
        asyncio.run(PollEngine().wait_until(predicate, timeout=1.0, interval=0))
