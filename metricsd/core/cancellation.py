"""Cooperative cancellation shared by the background loops."""

from __future__ import annotations

import asyncio
from enum import Enum


class WaitOutcome(str, Enum):
    """Result of a cancellation-aware wait."""

    ELAPSED = "elapsed"
    CANCELLED = "cancelled"


class CancellationToken:
    """One-shot cancellation signal.

    The token moves from active to cancelled exactly once. Loops suspend via
    :meth:`wait`, which reports cancellation as a return value instead of
    raising, so expected termination never goes through exception handling.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self, seconds: float) -> WaitOutcome:
        """Suspend for ``seconds`` or until cancelled, whichever comes first."""
        if self._event.is_set():
            return WaitOutcome.CANCELLED
        if seconds <= 0:
            # Still yield so tight loops give other tasks a turn.
            await asyncio.sleep(0)
            return WaitOutcome.CANCELLED if self._event.is_set() else WaitOutcome.ELAPSED
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return WaitOutcome.ELAPSED
        return WaitOutcome.CANCELLED

    async def wait_cancelled(self) -> None:
        """Suspend until the signal fires."""
        await self._event.wait()
