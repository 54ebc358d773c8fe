"""
Execution timing utilities.

Provides an accumulating wall-clock timer with named sections, plus a
deadline helper used to express wall-clock budgets for iterative solvers.
"""

import time
from contextlib import contextmanager
from typing import Iterator


class Timer:
    """
    Accumulating timer with named sections.

    Usage:
        timer = Timer()
        timer.start()

        with timer.section('optimization'):
            opt = minimize(...)

        with timer.section('final_solve'):
            pirls = solve_pirls(...)

        timer.stop()
        result = timer.result()
        # {'total_seconds': 0.05, 'optimization': 0.03, 'final_solve': 0.02}
    """

    def __init__(self):
        self._sections: dict[str, float] = {}
        self._start_time: float | None = None
        self._total: float | None = None

    def start(self) -> None:
        """Start the overall timer."""
        self._start_time = time.perf_counter()

    def stop(self) -> None:
        """Stop the overall timer."""
        if self._start_time is None:
            raise RuntimeError("Timer.stop() called before start()")
        self._total = time.perf_counter() - self._start_time

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        """
        Time a named section.

        Args:
            name: Section identifier (used as key in result dict)

        Note:
            Sections can overlap with each other and with the total time.
            Repeated sections accumulate.
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._sections[name] = self._sections.get(name, 0.0) + elapsed

    def result(self) -> dict[str, float]:
        """
        Get timing results.

        Returns:
            Dictionary with 'total_seconds' and all section timings

        Raises:
            RuntimeError: If called before stop()
        """
        if self._total is None:
            raise RuntimeError("Timer.result() called before stop()")

        result = {'total_seconds': self._total}
        result.update(self._sections)
        return result


class Deadline:
    """
    Wall-clock budget checked at iteration boundaries.

    A budget of None never expires.
    """

    def __init__(self, seconds: float | None):
        self._seconds = seconds
        self._start = time.monotonic()

    @property
    def expired(self) -> bool:
        if self._seconds is None:
            return False
        return time.monotonic() - self._start > self._seconds

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start
