"""Units of work the tool can put under load.

Each executor is a zero-argument callable. The pool and the metrics
aggregator only look at how long a call takes and whether it raised.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Dict, Optional

from .settings import StressSettings
from .utils.errors import ConfigurationError, WorkExecutionError

logger = logging.getLogger(__name__)


class PostgresQueryExecutor:
    """Runs a trivial query and checks the scalar it returns.

    With ``db_pool_max > 0`` connections are reused from a
    ``psycopg2.pool.ThreadedConnectionPool``; callers beyond the pool limit
    wait up to ``db_connect_timeout`` seconds for a free connection, and
    connections older than ``db_connection_lifetime`` are closed on return.
    """

    def __init__(self, settings: Optional[StressSettings] = None):
        try:
            import psycopg2
            import psycopg2.pool
        except ImportError as e:
            raise ConfigurationError(
                "psycopg2 is required for the postgres executor; "
                "install with: pip install 'stress-tool[postgres]'"
            ) from e

        self.settings = settings or StressSettings()
        self._psycopg2 = psycopg2
        self._dsn = self.settings.dsn()
        self._pool = None
        self._slots: Optional[threading.BoundedSemaphore] = None
        self._born: Dict[int, float] = {}
        self._born_lock = threading.Lock()

        if self.settings.db_pool_max > 0:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                min(self.settings.db_pool_min, self.settings.db_pool_max),
                self.settings.db_pool_max,
                self._dsn,
            )
            self._slots = threading.BoundedSemaphore(self.settings.db_pool_max)
            logger.info(
                f"Connection pool initialized "
                f"(min={self.settings.db_pool_min}, max={self.settings.db_pool_max})"
            )

    def __call__(self) -> None:
        if self._pool is None:
            conn = self._psycopg2.connect(self._dsn)
            try:
                self._run_query(conn)
            finally:
                conn.close()
            return

        if not self._slots.acquire(timeout=self.settings.db_connect_timeout):
            raise WorkExecutionError(
                f"Timed out after {self.settings.db_connect_timeout}s waiting for a pooled connection"
            )
        try:
            conn = self._pool.getconn()
            with self._born_lock:
                self._born.setdefault(id(conn), time.monotonic())
            try:
                self._run_query(conn)
            except Exception:
                self._release(conn, close=True)
                raise
            self._release(conn, close=self._expired(conn))
        finally:
            self._slots.release()

    def _run_query(self, conn) -> None:
        with conn.cursor() as cursor:
            cursor.execute(self.settings.db_query)
            row = cursor.fetchone()
        conn.rollback()
        if row is None or row[0] != self.settings.db_expected_result:
            raise WorkExecutionError(
                f"Unexpected query result: {row!r} (expected {self.settings.db_expected_result})"
            )

    def _expired(self, conn) -> bool:
        lifetime = self.settings.db_connection_lifetime
        if lifetime <= 0:
            return False
        with self._born_lock:
            born = self._born.get(id(conn), time.monotonic())
        return time.monotonic() - born > lifetime

    def _release(self, conn, close: bool) -> None:
        if close:
            with self._born_lock:
                self._born.pop(id(conn), None)
        self._pool.putconn(conn, close=close)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            logger.info("All database connections closed")


class HttpRequestExecutor:
    """Issues a GET against ``target_url``; non-2xx responses count as failures."""

    def __init__(self, settings: Optional[StressSettings] = None, client=None):
        try:
            import httpx
        except ImportError as e:
            raise ConfigurationError(
                "httpx is required for the http executor; "
                "install with: pip install 'stress-tool[http]'"
            ) from e

        self.settings = settings or StressSettings()
        self.url = self.settings.target_url
        self.client = client or httpx.Client(timeout=self.settings.http_timeout)

    def __call__(self) -> None:
        response = self.client.get(self.url)
        response.raise_for_status()

    def close(self) -> None:
        self.client.close()


class SleepExecutor:
    """Synthetic work: sleeps, and fails at ``failure_rate``. Useful for dry runs."""

    def __init__(
        self,
        duration: float = 0.01,
        *,
        jitter: float = 0.0,
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        self.duration = duration
        self.jitter = jitter
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()
        self._rng_lock = threading.Lock()

    def __call__(self) -> None:
        with self._rng_lock:
            delay = self.duration + self.rng.uniform(0, self.jitter) if self.jitter else self.duration
            fail = self.rng.random() < self.failure_rate
        time.sleep(delay)
        if fail:
            raise WorkExecutionError("Simulated failure")

    def close(self) -> None:
        pass


def build_executor(kind: str, settings: Optional[StressSettings] = None, **kwargs):
    """Create an executor by name: ``postgres``, ``http`` or ``sleep``."""
    if kind == "postgres":
        return PostgresQueryExecutor(settings)
    if kind == "http":
        return HttpRequestExecutor(settings)
    if kind == "sleep":
        return SleepExecutor(**kwargs)
    raise ConfigurationError(f"Unknown executor: {kind}")
