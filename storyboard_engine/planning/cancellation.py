"""Cooperative cancellation for the planning run.

Every suspension point of the pipeline (rate-limit delay, retry backoff,
collaborator call) races against one shared CancellationToken.  Losing the
race raises PlanningCancelled.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from storyboard_engine.planning.errors import PlanningCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared by every step of a run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PlanningCancelled()

    async def wait(self) -> None:
        await self._event.wait()


def ensure_not_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


async def cancellable_sleep(seconds: float, token: Optional[CancellationToken] = None) -> None:
    """Sleep for *seconds*; raise PlanningCancelled as soon as *token* fires."""
    ensure_not_cancelled(token)
    if token is None:
        await asyncio.sleep(max(0.0, seconds))
        return
    try:
        await asyncio.wait_for(token.wait(), timeout=max(0.0, seconds))
    except asyncio.TimeoutError:
        return
    raise PlanningCancelled()


async def race_cancellation(awaitable: Awaitable[T], token: Optional[CancellationToken] = None) -> T:
    """Await *awaitable*, aborting it if *token* fires first.

    The aborted operation is cancelled and awaited before PlanningCancelled is
    raised, so no task is left running in the background.
    """
    if token is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    if token.cancelled:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise PlanningCancelled()

    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise PlanningCancelled()
