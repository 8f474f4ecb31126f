"""Bounded polling helper."""

import time
from typing import Callable


def wait_until(check: Callable[[], bool], timeout: float, interval: float) -> bool:
    """Calls `check` until it returns True or `timeout` seconds have elapsed.

    `check` always runs at least once, so a zero timeout is a single probe.
    """
    deadline = time.monotonic() + max(0.0, timeout)
    while True:
        if check():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        time.sleep(min(interval, remaining))
