"""Bounded retry primitive used by polled checks."""

import logging
import time
from typing import Callable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll_until(
    probe: Callable[[], T],
    condition: Callable[[T], bool],
    attempts: int,
    interval: float,
    description: str = "condition",
    sleep: Optional[Callable[[float], None]] = None,
) -> Tuple[bool, Optional[T], int]:
    """Call probe until condition holds or attempts run out.

    Sleeps a fixed interval between attempts (not after the last one).

    Args:
        probe: Produces an observation.
        condition: Decides whether the observation is good enough.
        attempts: Maximum number of probes, at least 1.
        interval: Seconds between probes.
        description: Used in log messages.
        sleep: Sleep function, defaults to time.sleep.

    Returns:
        (satisfied, last observation, attempts used)
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    sleep = sleep or time.sleep

    value: Optional[T] = None
    for attempt in range(1, attempts + 1):
        value = probe()
        if condition(value):
            return True, value, attempt
        if attempt < attempts:
            logger.info("%s not met (attempt %d/%d), trying again...", description, attempt, attempts)
            sleep(interval)

    logger.warning("%s not met after %d attempts", description, attempts)
    return False, value, attempts


def wait_with_deadline(
    condition: Callable[[], bool],
    timeout: float,
    interval: float = 2,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> bool:
    """Poll condition until it is true or timeout seconds have elapsed."""
    sleep = sleep or time.sleep
    clock = clock or time.monotonic

    start_time = clock()
    while clock() - start_time < timeout:
        if condition():
            return True
        sleep(interval)
    return condition()
