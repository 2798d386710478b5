"""
Advanced modes of sleeping.
"""
import asyncio
import collections.abc
import time
from typing import Iterable


async def sleep(
        delays: float | None | Iterable[float | None],
        wakeup: asyncio.Event | None = None,
) -> float | None:
    """
    Measure the sleep time: either until the timeout, or until the event is set.

    Returns the number of seconds left to sleep, or ``None`` if the sleep was
    not interrupted and reached its specified delay (an equivalent of ``0``).
    In theory, the result can be ``0`` if the sleep was interrupted precisely
    the last moment before timing out; this is unlikely to happen though.

    If several delays are given, the shortest one is used. Negative or absent
    delays skip the sleep entirely (but still yield control to the event loop).
    """
    passed_delays = delays if isinstance(delays, collections.abc.Collection) else [delays]
    actual_delays = [delay for delay in passed_delays if delay is not None]
    minimal_delay = min(actual_delays) if actual_delays else 0

    # Do not go for the real low-level system sleep if there is no need to sleep.
    if minimal_delay <= 0:
        await asyncio.sleep(0)
        return None

    awakening_event = wakeup if wakeup is not None else asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        start_time = loop.time()
        await asyncio.wait_for(awakening_event.wait(), timeout=minimal_delay)
    except asyncio.TimeoutError:
        return None  # interruptible sleep is over: uninterrupted.
    else:
        end_time = loop.time()
        duration = end_time - start_time
        return max(0, minimal_delay - duration)


class Deadline:
    """
    A wall-clock budget of one operation, measured with a monotonic clock.

    ``None`` as the timeout means no deadline at all: the operation runs
    until it succeeds, fails, or is cancelled via the wakeup event.
    """

    def __init__(self, timeout: float | None) -> None:
        super().__init__()
        self.timeout = timeout
        self.started = time.monotonic()

    def __repr__(self) -> str:
        return f'<Deadline: {self.remaining}s left of {self.timeout}s>'

    @property
    def remaining(self) -> float | None:
        if self.timeout is None:
            return None
        return max(0.0, self.started + self.timeout - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining
        return remaining is not None and remaining <= 0
