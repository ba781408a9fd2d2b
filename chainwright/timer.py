"""Wall-clock timer for a whole run."""

from __future__ import annotations

import time


class Timer:
    def __init__(self):
        self._start: float | None = None
        self._stop: float | None = None

    def start(self) -> Timer:
        self._start = time.perf_counter()
        self._stop = None
        return self

    def stop(self) -> Timer:
        self._stop = time.perf_counter()
        return self

    def get_elapsed_time(self) -> float:
        """Seconds between start and stop (or now, while still running)."""
        if self._start is None:
            return 0.0
        end = self._stop if self._stop is not None else time.perf_counter()
        return end - self._start

    def get_elapsed_time_formatted(self) -> dict[str, float]:
        elapsed = self.get_elapsed_time()
        hours = int(elapsed // 3600)
        minutes = int(elapsed % 3600 // 60)
        seconds = round(elapsed % 60, 2)
        return {"hours": hours, "minutes": minutes, "seconds": seconds}
