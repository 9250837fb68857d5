"""Backoff utilities.

`backoff_delays` is an async generator: it yields ``(attempt, delay)`` for the
caller to make an attempt, and sleeps before handing out the next one. The
first attempt is yielded immediately; the delay reported with it is the wait
that will follow a failure.
"""
import asyncio
from typing import AsyncIterator, Tuple


async def backoff_delays(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[Tuple[int, float]]:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    delay = max(0.0, initial_delay)
    for attempt in range(1, max_attempts + 1):
        yield attempt, delay
        if attempt == max_attempts:
            return
        await asyncio.sleep(delay)
        delay = min(delay * multiplier, max_delay)
