import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeout(TimeoutError):
    pass


def next_interval(current: float, backoff: float, max_interval: Optional[float]) -> float:
    interval = current * backoff
    if max_interval is not None:
        interval = min(interval, max_interval)
    return interval


async def wait_for_condition(
    check: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    *,
    interval: float,
    timeout: Optional[float] = None,
    backoff: float = 1.0,
    max_interval: Optional[float] = None,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Check until ``is_done(result)``; return that result.

    The first check runs immediately. ``timeout`` bounds the total time spent
    waiting between checks and raises PollTimeout once exceeded. Check errors
    propagate to the caller unchanged.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    if backoff < 1.0:
        raise ValueError("backoff must be >= 1.0")

    waited = 0.0
    delay = interval
    attempt = 0
    while True:
        attempt += 1
        result = await check()
        if is_done(result):
            return result

        if timeout is not None and waited + delay > timeout:
            raise PollTimeout(f"Condition not met after {attempt} checks ({waited:.1f}s)")

        logger.debug(f"Poll attempt {attempt} not done; sleeping {delay:.1f}s")
        await sleep_fn(delay)
        waited += delay
        delay = next_interval(delay, backoff, max_interval)
