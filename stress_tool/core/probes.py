"""Connection probes: count open TCP connections to a backend port.

The controller only needs ``count_open_connections(port, pid)``. How the
number is obtained (psutil, parsing ``netstat`` output) stays behind that
call, and any failure surfaces as ``ProbeError``.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass
from typing import FrozenSet, Optional, Protocol, Sequence, Tuple, runtime_checkable

import psutil

from ..utils.errors import ProbeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetstatLayout:
    """Where a netstat flavour puts the fields we need."""

    command: Tuple[str, ...]
    header_lines: int
    protocols: FrozenSet[str]
    remote_column: int
    pid_column: int

    @property
    def min_fields(self) -> int:
        return max(self.remote_column, self.pid_column) + 1


# netstat -n -o: Proto, Local Address, Foreign Address, State, PID
WINDOWS_NETSTAT = NetstatLayout(
    command=(r"C:\windows\system32\netstat.exe", "-n", "-o"),
    header_lines=4,
    protocols=frozenset({"TCP"}),
    remote_column=2,
    pid_column=4,
)

# netstat -tnp: Proto, Recv-Q, Send-Q, Local Address, Foreign Address, State, PID/Program name
LINUX_NETSTAT = NetstatLayout(
    command=("netstat", "-t", "-n", "-p"),
    header_lines=2,
    protocols=frozenset({"tcp", "tcp6"}),
    remote_column=4,
    pid_column=6,
)


def default_netstat_layout() -> NetstatLayout:
    if sys.platform.startswith("win"):
        return WINDOWS_NETSTAT
    return LINUX_NETSTAT


@runtime_checkable
class ConnectionProbe(Protocol):
    """Counts currently open connections to ``port``, optionally owned by ``pid``."""

    def count_open_connections(self, port: int, pid: Optional[int] = None) -> int: ...


class NullConnectionProbe:
    """Probe used when connection counting is disabled; always reports zero."""

    def count_open_connections(self, port: int, pid: Optional[int] = None) -> int:
        return 0


class PsutilConnectionProbe:
    """Counts TCP connections through ``psutil.net_connections``."""

    def count_open_connections(self, port: int, pid: Optional[int] = None) -> int:
        try:
            connections = psutil.net_connections(kind="tcp")
        except (psutil.Error, OSError) as e:
            raise ProbeError(f"Could not list network connections: {e}") from e

        count = 0
        for conn in connections:
            if not conn.raddr or conn.raddr.port != port:
                continue
            if pid is not None and conn.pid != pid:
                continue
            count += 1
        return count


def _parse_pid(token: str, line: str) -> Optional[int]:
    # Linux prints "1234/python", or "-" when the owner is not visible
    if token == "-":
        return None
    try:
        return int(token.split("/", 1)[0])
    except ValueError:
        raise ProbeError("Malformed netstat row", line=line.strip()) from None


def parse_netstat_output(
    output: str,
    port: int,
    pid: Optional[int] = None,
    *,
    layout: NetstatLayout = WINDOWS_NETSTAT,
    header_lines: Optional[int] = None,
) -> int:
    """Count netstat rows whose protocol, remote port and owning pid match.

    Rows too short to hold the remote address and pid are skipped; a pid
    column that is not a number is malformed.
    """
    if header_lines is None:
        header_lines = layout.header_lines
    suffix = f":{port}"
    count = 0
    for line in output.splitlines()[header_lines:]:
        fields = line.split()
        if len(fields) < layout.min_fields:
            continue
        owner_pid = _parse_pid(fields[layout.pid_column], line)
        if fields[0] not in layout.protocols:
            continue
        if pid is not None and owner_pid != pid:
            continue
        if fields[layout.remote_column].endswith(suffix):
            count += 1
    return count


class NetstatConnectionProbe:
    """Runs netstat and parses its text output with a platform layout."""

    def __init__(
        self,
        layout: Optional[NetstatLayout] = None,
        *,
        command: Optional[Sequence[str]] = None,
        timeout: float = 10.0,
    ):
        self.layout = layout or default_netstat_layout()
        self.command = list(command) if command else list(self.layout.command)
        self.timeout = timeout

    def count_open_connections(self, port: int, pid: Optional[int] = None) -> int:
        command_str = " ".join(self.command)
        logger.debug(f"Running probe command: {command_str}")
        try:
            completed = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ProbeError(f"Failed to run probe command: {e}", command=command_str) from e

        return parse_netstat_output(completed.stdout, port, pid, layout=self.layout)


def build_probe(kind: str) -> ConnectionProbe:
    """Create a probe by name: ``psutil``, ``netstat`` or ``none``."""
    if kind == "psutil":
        return PsutilConnectionProbe()
    if kind == "netstat":
        return NetstatConnectionProbe()
    if kind == "none":
        return NullConnectionProbe()
    raise ValueError(f"Unknown probe: {kind}")
