from __future__ import annotations

import time


def perf_now() -> float:
    """Monotonic timer for node and run latency measurements."""

    return time.perf_counter()


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since `start` (from perf_now())."""

    return round((time.perf_counter() - start) * 1000, 2)


def remaining_seconds(deadline: float | None) -> float | None:
    """Seconds left until a perf_now()-based deadline, never negative; None when unbounded."""

    if deadline is None:
        return None
    return max(0.0, deadline - time.perf_counter())
