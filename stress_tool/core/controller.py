"""Interactive load controller.

Every tick the controller samples the connection probe, prints a status line
when the numbers changed, applies operator keys and, in random mode, submits
a random batch. It keeps running until the operator presses ``q``.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from rich.console import Console

from .commands import CommandSource, QueueCommandSource
from .config import LoadConfig
from .metrics import MetricsAggregator, MetricsSnapshot
from .pool import WorkItem, WorkQueue
from .probes import ConnectionProbe, NullConnectionProbe
from ..utils.errors import QueueFullError

logger = logging.getLogger(__name__)

UNKNOWN = "?"

QUIT_KEY = "q"
RANDOM_KEY = "r"


def _ms(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    return f"{seconds * 1000:.3f}ms"


def format_status(snapshot: MetricsSnapshot, connections: Optional[int], free_threads: int) -> str:
    """Render the counters part of the status line (no elapsed time)."""
    conn = UNKNOWN if connections is None else str(connections)
    return (
        f"Queries: success={snapshot.success_count}, fail={snapshot.fail_count}  "
        f"Connections: {conn}  Available threads: {free_threads}  "
        f"Query time: min={_ms(snapshot.min_latency)}, max={_ms(snapshot.max_latency)}, "
        f"avg={_ms(snapshot.average_latency)}"
    )


@dataclass
class ControllerState:
    random_enabled: bool = False
    last_message: str = ""
    terminated: bool = False
    started_at: float = field(default_factory=time.monotonic)
    ticks: int = 0


class LoadController:
    """Drives a worker pool from operator commands and random bursts."""

    def __init__(
        self,
        pool: WorkQueue,
        metrics: MetricsAggregator,
        executor: WorkItem,
        *,
        probe: Optional[ConnectionProbe] = None,
        commands: Optional[CommandSource] = None,
        config: Optional[LoadConfig] = None,
        console: Optional[Console] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pool = pool
        self.metrics = metrics
        self.executor = executor
        self.probe = probe or NullConnectionProbe()
        self.commands = commands or QueueCommandSource()
        self.config = config or LoadConfig()
        self.console = console or Console()
        self.rng = rng or random.Random(self.config.seed)
        self._clock = clock
        self._sleep = sleep
        self.state = ControllerState(
            random_enabled=self.config.random_enabled,
            started_at=clock(),
        )

    @property
    def terminated(self) -> bool:
        return self.state.terminated

    @property
    def random_enabled(self) -> bool:
        return self.state.random_enabled

    def elapsed(self) -> float:
        return self._clock() - self.state.started_at

    def add_requests(self, count: int) -> int:
        """Submit ``count`` measured work items; non-positive counts submit nothing."""
        count = max(count, 0)
        submitted = 0
        for _ in range(count):
            try:
                self.pool.submit(self.metrics.measure(self.executor))
            except QueueFullError as e:
                logger.warning(f"Submitted {submitted}/{count} requests: {e}")
                break
            submitted += 1
        return submitted

    def handle_command(self, key: str) -> None:
        if key == QUIT_KEY:
            logger.info("Quit requested")
            self.state.terminated = True
            return
        if key == RANDOM_KEY:
            self.state.random_enabled = not self.state.random_enabled
            logger.info(f"Random mode {'enabled' if self.state.random_enabled else 'disabled'}")
            return
        batch = self.config.batch_for_key(key)
        if batch is None:
            logger.debug(f"Ignoring unknown command {key!r}")
            return
        submitted = self.add_requests(batch)
        logger.info(f"Queued {submitted} requests")

    def read_probe(self) -> Optional[int]:
        """Probe count, or None when the probe failed."""
        try:
            return self.probe.count_open_connections(self.config.probe_port, self.config.probe_pid)
        except Exception as e:
            logger.warning(f"Connection probe failed: {e}")
            return None

    def status_message(self, connections: Optional[int]) -> str:
        return format_status(self.metrics.snapshot(), connections, self.pool.free_threads())

    def tick(self) -> Optional[str]:
        """Run one control step. Returns the printed line, if any."""
        self.state.ticks += 1
        connections = self.read_probe()

        printed = None
        message = self.status_message(connections)
        if message != self.state.last_message:
            printed = f"{self.elapsed():.3f} {message}"
            self.console.print(printed, markup=False, highlight=False, soft_wrap=True)
            self.state.last_message = message

        for key in self.commands.read_pending():
            self.handle_command(key)
            if self.state.terminated:
                return printed

        if self.state.random_enabled:
            self.add_requests(self.rng.randrange(self.config.random_low, self.config.random_high))

        return printed

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick until quit (or ``max_ticks``). Outstanding work is left running."""
        while not self.state.terminated:
            if max_ticks is not None and self.state.ticks >= max_ticks:
                break
            self._sleep(self.config.tick_interval)
            self.tick()
