"""Tests for the cancellation primitives."""
from __future__ import annotations

import asyncio
import time

import pytest

from storyboard_engine.planning.cancellation import (
    CancellationToken,
    cancellable_sleep,
    ensure_not_cancelled,
    race_cancellation,
)
from storyboard_engine.planning.errors import PlanningCancelled, StoryboardEngineError


def test_planning_cancelled_is_engine_error():
    assert issubclass(PlanningCancelled, StoryboardEngineError)
    assert str(PlanningCancelled()) == "Request cancelled"


def test_ensure_not_cancelled_without_token():
    ensure_not_cancelled(None)


class TestCancellableSleep:

    def test_sleeps_without_token(self):
        asyncio.run(cancellable_sleep(0.01))

    def test_completes_when_not_cancelled(self):
        async def run():
            await cancellable_sleep(0.01, CancellationToken())

        asyncio.run(run())

    def test_already_cancelled_raises_immediately(self):
        async def run():
            token = CancellationToken()
            token.cancel()
            await cancellable_sleep(30, token)

        started = time.monotonic()
        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert time.monotonic() - started < 5

    def test_cancel_during_sleep_interrupts(self):
        async def run():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            await cancellable_sleep(30, token)

        started = time.monotonic()
        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert time.monotonic() - started < 5


class TestRaceCancellation:

    def test_returns_result(self):
        async def work():
            await asyncio.sleep(0)
            return 42

        async def run():
            return await race_cancellation(work(), CancellationToken())

        assert asyncio.run(run()) == 42

    def test_without_token_awaits_directly(self):
        async def work():
            return "ok"

        assert asyncio.run(race_cancellation(work())) == "ok"

    def test_propagates_errors(self):
        async def work():
            raise ValueError("boom")

        async def run():
            await race_cancellation(work(), CancellationToken())

        with pytest.raises(ValueError):
            asyncio.run(run())

    def test_cancel_aborts_in_flight_call(self):
        state = {"cancelled": False}

        async def slow():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                state["cancelled"] = True
                raise

        async def run():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            await race_cancellation(slow(), token)

        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
        assert state["cancelled"] is True
