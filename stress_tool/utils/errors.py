"""Custom exceptions for the stress tool."""

from __future__ import annotations


class StressToolError(Exception):
    """Base exception for all stress-tool errors."""
    pass


class ConfigurationError(StressToolError):
    """Raised when settings or CLI options cannot be turned into a run."""
    pass


class ProbeError(StressToolError):
    """Raised when the connection probe cannot produce a count."""

    def __init__(self, message: str, *, command: "str | None" = None, line: "str | None" = None):
        parts = [message]
        loc = []
        if command:
            loc.append(f"command={command}")
        if line is not None:
            loc.append(f"line={line!r}")
        if loc:
            parts.append(f"({', '.join(loc)})")
        super().__init__(" ".join(parts))


class PoolClosedError(StressToolError):
    """Raised when work is submitted to a pool that has been shut down."""
    pass


class QueueFullError(StressToolError):
    """Raised when a bounded pool rejects a submission."""
    pass


class BurstTimeoutError(StressToolError):
    """Raised when a burst run does not settle in time."""

    def __init__(self, completed: int, expected: int, timeout: float):
        self.completed = completed
        self.expected = expected
        self.timeout = timeout
        super().__init__(
            f"Could not complete all requests in {timeout:.1f}s "
            f"({completed}/{expected} settled)"
        )


class WorkExecutionError(StressToolError):
    """Raised by an executor when the backend answers incorrectly."""
    pass
