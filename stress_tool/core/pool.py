"""Fixed-size worker pools that execute zero-argument work items.

``WorkerPool`` owns a FIFO queue and ``size`` long-lived daemon threads. Each
worker blocks while the queue is empty, pops the head item, runs it and goes
back to waiting. A failing item is logged and never takes its worker down.

By default the queue is unbounded and ``submit`` never blocks. An optional
``max_queue_size`` turns on admission control, and ``shutdown`` is an opt-in
way to stop the workers; neither is used by the interactive controller.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, List, Optional, Protocol, runtime_checkable

from ..utils.errors import PoolClosedError, QueueFullError

logger = logging.getLogger(__name__)

WorkItem = Callable[[], None]


@runtime_checkable
class WorkQueue(Protocol):
    """What the load controller needs from a pool."""

    def submit(self, item: WorkItem) -> None: ...

    def free_threads(self) -> int: ...


class AdmissionPolicy:
    """What a bounded pool does when its queue is full."""

    REJECT = "reject"
    BLOCK = "block"


class WorkerPool(WorkQueue):
    """Bounded set of worker threads consuming a shared FIFO queue."""

    def __init__(
        self,
        size: int,
        *,
        max_queue_size: Optional[int] = None,
        admission_policy: str = AdmissionPolicy.REJECT,
        name: str = "stress-worker",
    ):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        if max_queue_size is not None and max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if admission_policy not in (AdmissionPolicy.REJECT, AdmissionPolicy.BLOCK):
            raise ValueError(f"Unknown admission policy: {admission_policy}")

        self._size = size
        self._max_queue_size = max_queue_size
        self._admission_policy = admission_policy

        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._queue: Deque[WorkItem] = deque()
        self._busy = 0
        self._peak_busy = 0
        self._closed = False

        self._threads: List[threading.Thread] = []
        for i in range(size):
            thread = threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)

        logger.info(f"Started worker pool with {size} threads")

    @property
    def size(self) -> int:
        return self._size

    @property
    def busy_count(self) -> int:
        with self._lock:
            return self._busy

    @property
    def peak_busy_count(self) -> int:
        """Highest number of simultaneously busy workers seen so far."""
        with self._lock:
            return self._peak_busy

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def submit(self, item: WorkItem) -> None:
        """Append an item to the queue and wake one idle worker."""
        with self._lock:
            if self._closed:
                raise PoolClosedError("Cannot submit to a pool that has been shut down")
            if self._max_queue_size is not None:
                while len(self._queue) >= self._max_queue_size:
                    if self._admission_policy == AdmissionPolicy.REJECT:
                        raise QueueFullError(
                            f"Queue is full ({self._max_queue_size} pending items)"
                        )
                    self._not_full.wait()
                    if self._closed:
                        raise PoolClosedError("Pool was shut down while waiting for space")
            self._queue.append(item)
            self._not_empty.notify()

    def free_threads(self) -> int:
        with self._lock:
            return self._size - self._busy

    def pending(self) -> int:
        """Number of queued items no worker has picked up yet."""
        with self._lock:
            return len(self._queue)

    def shutdown(self, cancel_pending: bool = False, wait: bool = False, timeout: Optional[float] = None) -> int:
        """Stop accepting work and let the workers exit.

        Workers finish whatever is still queued unless ``cancel_pending`` is
        set, in which case queued items are dropped. Items already running
        are never interrupted. Returns the number of dropped items.
        """
        with self._lock:
            self._closed = True
            dropped = 0
            if cancel_pending:
                dropped = len(self._queue)
                self._queue.clear()
            self._not_empty.notify_all()
            self._not_full.notify_all()

        if dropped:
            logger.info(f"Dropped {dropped} pending work items on shutdown")
        if wait:
            for thread in self._threads:
                thread.join(timeout)
        return dropped

    def _run(self) -> None:
        while True:
            with self._lock:
                while not self._queue:
                    if self._closed:
                        return
                    self._not_empty.wait()
                item = self._queue.popleft()
                self._busy += 1
                self._peak_busy = max(self._peak_busy, self._busy)
                self._not_full.notify()

            try:
                item()
            except Exception:
                logger.exception("Work item raised an exception")
            finally:
                with self._lock:
                    self._busy -= 1


class ExecutorPool(WorkQueue):
    """Same surface as ``WorkerPool`` on top of ``ThreadPoolExecutor``."""

    def __init__(self, size: int, *, name: str = "stress-executor"):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._size = size
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._busy = 0
        self._queued = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def busy_count(self) -> int:
        with self._lock:
            return self._busy

    def submit(self, item: WorkItem) -> None:
        with self._lock:
            self._queued += 1
        try:
            self._executor.submit(self._call, item)
        except RuntimeError as e:
            with self._lock:
                self._queued -= 1
            raise PoolClosedError(str(e)) from e

    def free_threads(self) -> int:
        with self._lock:
            return self._size - self._busy

    def pending(self) -> int:
        with self._lock:
            return self._queued

    def shutdown(self, cancel_pending: bool = False, wait: bool = False) -> int:
        with self._lock:
            dropped = self._queued if cancel_pending else 0
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)
        if cancel_pending:
            # cancelled futures never reach _call
            with self._lock:
                self._queued = 0
        return dropped

    def _call(self, item: WorkItem) -> None:
        with self._lock:
            self._queued -= 1
            self._busy += 1
        try:
            item()
        except Exception:
            logger.exception("Work item raised an exception")
        finally:
            with self._lock:
                self._busy -= 1
