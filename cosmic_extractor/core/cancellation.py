"""Cooperative cancellation for long-running runs.

A run has two kinds of suspension points: provider calls and the delay
between rounds. Both go through a CancellationToken so that cancel() makes
pending waits return at once and aborts the in-flight HTTP call, rather than
letting a 3s backoff or a 180s request run to completion.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from cosmic_extractor.core.errors import RunCancelledError

T = TypeVar("T")


class CancellationToken:
    """Cancellation signal shared between a caller and one run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError("Run cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early with RunCancelledError if cancelled."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise RunCancelledError("Run cancelled during delay")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        On cancellation the underlying task is cancelled and
        RunCancelledError is raised.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
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
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:  # abandoned call
            pass
        raise RunCancelledError("Run cancelled during provider call")
