"""Progress ticks emitted by the background loops."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TextIO


class Tick(str, Enum):
    """One completed unit of background work, rendered as a single character."""

    RECORDED = "."
    FLUSHED = "*"


TickObserver = Callable[[Tick], None]


def ignore_ticks(_tick: Tick) -> None:
    return None


def console_ticks(stream: TextIO) -> TickObserver:
    """Observer that writes each tick to ``stream`` without a newline."""

    def write(tick: Tick) -> None:
        stream.write(tick.value)
        stream.flush()

    return write
