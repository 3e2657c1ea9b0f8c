"""Thread-safe success/failure counters and latency extrema."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the aggregator state. Latencies are seconds."""

    success_count: int = 0
    fail_count: int = 0
    min_latency: Optional[float] = None
    max_latency: Optional[float] = None
    total_latency: float = 0.0

    @property
    def completed(self) -> int:
        return self.success_count + self.fail_count

    @property
    def average_latency(self) -> Optional[float]:
        if not self.success_count:
            return None
        return self.total_latency / self.success_count

    @property
    def failure_rate(self) -> float:
        if not self.completed:
            return 0.0
        return self.fail_count / self.completed

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "min_latency": self.min_latency,
            "max_latency": self.max_latency,
            "avg_latency": self.average_latency,
            "total_latency": self.total_latency,
        }


class MetricsAggregator:
    """Owns the counters; every update happens under one lock."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._lock = threading.Lock()
        self._success = 0
        self._fail = 0
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self._total = 0.0

    def record_success(self, elapsed: float) -> None:
        with self._lock:
            self._success += 1
            if self._min is None or elapsed < self._min:
                self._min = elapsed
            if self._max is None or elapsed > self._max:
                self._max = elapsed
            self._total += elapsed

    def record_failure(self) -> None:
        with self._lock:
            self._fail += 1

    def average_latency(self) -> Optional[float]:
        """Mean latency of successful items, or None before the first one."""
        with self._lock:
            if not self._success:
                return None
            return self._total / self._success

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                success_count=self._success,
                fail_count=self._fail,
                min_latency=self._min,
                max_latency=self._max,
                total_latency=self._total,
            )

    def reset(self) -> None:
        with self._lock:
            self._success = 0
            self._fail = 0
            self._min = None
            self._max = None
            self._total = 0.0

    def measure(self, item: Callable[[], None]) -> Callable[[], None]:
        """Wrap a work item so its duration and outcome are recorded.

        Errors raised by the item are logged and counted, never re-raised.
        """

        def measured() -> None:
            started = self._clock()
            try:
                item()
            except Exception:
                logger.exception("Request failed")
                self.record_failure()
                return
            self.record_success(self._clock() - started)

        return measured
