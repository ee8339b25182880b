"""Exponential backoff schedule for delivery retries."""

from __future__ import annotations

from datetime import timedelta

# 2**62 minutes already exceeds timedelta's range
_MAX_EXPONENT = 62


def calculate_backoff(attempt: int, initial: timedelta, maximum: timedelta) -> timedelta:
    """Delay to wait after failed attempt number ``attempt``.

    Doubles from ``initial`` with each attempt and is capped at ``maximum``:
    with a one minute initial delay attempts 1, 2, 3, 4 give 1, 2, 4 and 8
    minutes.

    Args:
        attempt: 1-based number of the attempt that just failed. Values
            below 1 are treated as 1.
        initial: Delay after the first failure.
        maximum: Upper bound for any delay.

    Returns:
        The delay, never greater than ``maximum``.
    """
    exponent = max(attempt, 1) - 1
    if exponent > _MAX_EXPONENT:
        return maximum

    try:
        delay = initial * (2**exponent)
    except OverflowError:
        return maximum
    return min(delay, maximum)
