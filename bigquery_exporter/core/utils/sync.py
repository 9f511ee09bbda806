import asyncio
import math
import time
from datetime import timedelta


def next_boundary(now: float, interval: timedelta) -> float:
    """
    Returns the nearest instant strictly after ``now`` that is an exact
    multiple of ``interval`` since the epoch.

    Args:
        now (float): Current time, in seconds since the epoch.
        interval (timedelta): The alignment period.

    Returns:
        The next aligned instant, in seconds since the epoch.
    """

    period = interval.total_seconds()
    return (math.floor(now / period) + 1) * period


async def sleep_until_next(interval: timedelta, cancellation: asyncio.Event | None = None) -> bool:
    """
    Sleeps until the next wall-clock instant that is a multiple of the
    interval, so refreshes line up across restarts and across instances.

    Args:
        interval (timedelta): The alignment period.
        cancellation (asyncio.Event): An event to stop sleeping at any time.

    Returns:
        True if the sleep was cut short by the cancellation event.
    """

    delay = next_boundary(time.time(), interval) - time.time()
    if cancellation is None:
        await asyncio.sleep(max(delay, 0))
        return False

    try:
        await asyncio.wait_for(cancellation.wait(), timeout=max(delay, 0))
    except TimeoutError:
        return False
    return True
