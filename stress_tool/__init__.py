"""
stress-tool: interactive concurrent load generator for backend services.

Drive a fixed worker pool at a database (or any callable) and watch
throughput, failures and latency change as you vary the load:
    pool = WorkerPool(4)
    controller = LoadController(pool, MetricsAggregator(), executor)
    controller.run()
"""

__version__ = "0.1.0"

from .core.burst import BurstResult, run_burst
from .core.config import LoadConfig
from .core.controller import LoadController
from .core.metrics import MetricsAggregator, MetricsSnapshot
from .core.pool import ExecutorPool, WorkerPool
from .settings import StressSettings

__all__ = [
    "BurstResult",
    "ExecutorPool",
    "LoadConfig",
    "LoadController",
    "MetricsAggregator",
    "MetricsSnapshot",
    "StressSettings",
    "WorkerPool",
    "run_burst",
]
