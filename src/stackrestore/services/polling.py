"""Bounded polling and check-then-create helpers."""

import time
from typing import Any, Callable


def poll_until(
    condition: Callable[[], Any],
    interval_seconds: float,
    max_attempts: int,
) -> bool:
    """Call ``condition`` until it is truthy, at most ``max_attempts`` times.

    Sleeps ``interval_seconds`` after every failed attempt, so the total wait
    never exceeds ``max_attempts * interval_seconds``.
    """
    for _ in range(max(1, max_attempts)):
        if condition():
            return True
        time.sleep(interval_seconds)
    return False


def ensure_exists(check: Callable[[], Any], create: Callable[[], Any]) -> bool:
    """Run ``create`` only when ``check`` reports the resource missing.

    Returns True when the resource was created by this call.
    """
    if check():
        return False
    create()
    return True
