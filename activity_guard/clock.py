"""Wall-clock access and trailing-window arithmetic.

Every component takes a ``clock`` callable defaulting to ``now`` so tests
can drive time explicitly instead of sleeping.
"""

import time


def now() -> float:
    return time.time()


def window_cutoff(current: float, window_seconds: float) -> float:
    """Oldest timestamp still inside a trailing window ending at *current*."""
    return current - window_seconds


def in_window(timestamp: float, current: float, window_seconds: float) -> bool:
    # Cutoff is inclusive: a timestamp exactly window_seconds old is kept.
    return timestamp >= window_cutoff(current, window_seconds)
