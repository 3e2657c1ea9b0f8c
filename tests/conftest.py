import io
import threading
import time

import pytest
from rich.console import Console

from stress_tool.core.metrics import MetricsAggregator
from stress_tool.core.pool import WorkerPool


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is truthy or ``timeout`` runs out."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class FakeClock:
    """Manually advanced clock for timing-sensitive code."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def metrics():
    return MetricsAggregator()


@pytest.fixture
def make_pool():
    pools = []

    def factory(size=4, **kwargs):
        pool = WorkerPool(size, **kwargs)
        pools.append(pool)
        return pool

    yield factory
    for pool in pools:
        pool.shutdown(cancel_pending=True)


@pytest.fixture
def blocker():
    """Event that parks work items until the test releases them."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=400, force_terminal=False, color_system=None)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def wait_for():
    return wait_until
