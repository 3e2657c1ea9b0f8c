"""One-shot burst: submit N requests and wait for all of them to settle."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .metrics import MetricsAggregator, MetricsSnapshot
from .pool import WorkItem, WorkQueue
from .probes import ConnectionProbe, NullConnectionProbe
from ..utils.errors import BurstTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class BurstResult:
    requested: int
    snapshot: MetricsSnapshot
    elapsed: float
    connections_before: Optional[int] = None
    peak_connections: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.snapshot.fail_count == 0 and self.snapshot.completed == self.requested

    def to_dict(self) -> dict:
        return {
            "requested": self.requested,
            "elapsed_seconds": self.elapsed,
            "connections_before": self.connections_before,
            "peak_connections": self.peak_connections,
            "ok": self.ok,
            **self.snapshot.to_dict(),
        }


def _probe(probe: ConnectionProbe, port: int, pid: Optional[int]) -> Optional[int]:
    try:
        return probe.count_open_connections(port, pid)
    except Exception as e:
        logger.warning(f"Connection probe failed: {e}")
        return None


def run_burst(
    pool: WorkQueue,
    metrics: MetricsAggregator,
    executor: WorkItem,
    count: int,
    *,
    probe: Optional[ConnectionProbe] = None,
    port: int = 5432,
    pid: Optional[int] = None,
    settle_checks: int = 3,
    poll_interval: float = 0.5,
    timeout: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> BurstResult:
    """Submit ``count`` measured requests and poll until every one has finished.

    After the last request settles the probe is sampled ``settle_checks`` more
    times so lingering connections show up in ``peak_connections``. Raises
    ``BurstTimeoutError`` if requests are still outstanding after ``timeout``
    seconds (default: two seconds per request).
    """
    count = max(count, 0)
    probe = probe or NullConnectionProbe()
    if timeout is None:
        timeout = max(count * 2.0, poll_interval)

    metrics.reset()
    connections_before = _probe(probe, port, pid)
    logger.info(f"Starting burst of {count} requests with {connections_before} open connections")

    for _ in range(count):
        pool.submit(metrics.measure(executor))

    peak = connections_before
    started = clock()
    remaining_checks = settle_checks
    while True:
        current = _probe(probe, port, pid)
        if current is not None:
            peak = current if peak is None else max(peak, current)
        snapshot = metrics.snapshot()
        logger.info(
            f"Connections: {current}  success={snapshot.success_count}  fail={snapshot.fail_count}"
        )

        if snapshot.completed == count:
            if remaining_checks <= 0:
                break
            remaining_checks -= 1
        elif clock() - started > timeout:
            raise BurstTimeoutError(snapshot.completed, count, timeout)
        sleep(poll_interval)

    elapsed = clock() - started
    logger.info(f"Burst finished in {elapsed:.2f}s")
    return BurstResult(
        requested=count,
        snapshot=metrics.snapshot(),
        elapsed=elapsed,
        connections_before=connections_before,
        peak_connections=peak,
    )
