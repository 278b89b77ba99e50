"""Timing helpers."""

import time
from typing import Optional


class Timer:
    """Context manager measuring wall-clock time in milliseconds.

    Usage:
        with Timer() as t:
            do_work()
        print(t.elapsed_ms)
    """

    def __init__(self):
        self.start: Optional[float] = None
        self.end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        self.end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        """Elapsed milliseconds (running total while still inside the block)."""
        if self.start is None:
            return 0.0
        end = self.end if self.end is not None else time.perf_counter()
        return (end - self.start) * 1000
