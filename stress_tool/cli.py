"""Command-line interface for stress-tool."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from . import __version__
from .core.burst import run_burst
from .core.commands import ConsoleCommandSource
from .core.config import LoadConfig
from .core.controller import LoadController
from .core.metrics import MetricsAggregator
from .core.pool import ExecutorPool, WorkerPool
from .core.probes import build_probe
from .executors import build_executor
from .settings import StressSettings
from .utils.errors import ConfigurationError, StressToolError


console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

KEY_HELP = (
    "Keys: 1-9 add 1/4/16/64/256/1024/4096/16384/131072 requests, "
    "r toggles random load, q quits"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stress-tool",
        description="Generate concurrent load against a backend and watch latency and failures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive session against PostgreSQL (settings from STRESS_TOOL_* / .env)
  stress-tool interactive --pool-size 8

  # Dry run with synthetic work and random load from the start
  stress-tool interactive --executor sleep --probe none --random

  # Fire 64 requests and wait until they all finish
  stress-tool burst 64 --output burst.json
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", help="Override STRESS_TOOL_LOG_LEVEL")
    common.add_argument(
        "--executor",
        choices=["postgres", "http", "sleep"],
        default="postgres",
        help="Unit of work to run (default: postgres)",
    )
    common.add_argument(
        "--probe",
        choices=["psutil", "netstat", "none"],
        default="psutil",
        help="How to count open connections (default: psutil)",
    )
    common.add_argument("--port", type=int, default=None, help="Backend port counted by the probe")
    common.add_argument(
        "--all-processes",
        action="store_true",
        help="Count connections from every process, not only this one",
    )
    common.add_argument("--pool-size", type=int, default=4, help="Number of worker threads")
    common.add_argument(
        "--pool-backend",
        choices=["simple", "executor"],
        default="simple",
        help="simple: built-in worker pool; executor: concurrent.futures thread pool",
    )
    common.add_argument("--sleep", type=float, default=0.01, help="Sleep executor duration (seconds)")
    common.add_argument("--failure-rate", type=float, default=0.0, help="Sleep executor failure rate")

    sub = parser.add_subparsers(dest="command")

    interactive = sub.add_parser("interactive", parents=[common], help="Run the interactive load controller")
    interactive.add_argument("--interval", type=float, default=0.5, help="Tick interval in seconds")
    interactive.add_argument("--random", action="store_true", help="Start with random load enabled")
    interactive.add_argument("--seed", type=int, help="Seed for random load")
    interactive.add_argument("--max-queue-size", type=int, help="Bound the work queue")
    interactive.add_argument(
        "--admission-policy",
        choices=["reject", "block"],
        default="reject",
        help="What to do when a bounded queue is full",
    )

    burst = sub.add_parser("burst", parents=[common], help="Submit COUNT requests and wait for them")
    burst.add_argument("count", type=int, help="Number of requests")
    burst.add_argument("--timeout", type=float, help="Seconds to wait (default: 2 per request)")
    burst.add_argument("--output", help="File to save the burst summary (JSON format)")

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_load_config(args: argparse.Namespace, settings: StressSettings) -> LoadConfig:
    try:
        return LoadConfig(
            pool_size=args.pool_size,
            tick_interval=getattr(args, "interval", 0.5),
            random_enabled=getattr(args, "random", False),
            seed=getattr(args, "seed", None),
            probe_port=args.port or settings.db_port,
            probe_pid=None if args.all_processes else os.getpid(),
            max_queue_size=getattr(args, "max_queue_size", None),
            admission_policy=getattr(args, "admission_policy", "reject"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid options: {e}") from e


def build_pool(config: LoadConfig, backend: str):
    if backend == "executor":
        if config.max_queue_size is not None:
            raise ConfigurationError("--max-queue-size is only supported by the simple pool")
        return ExecutorPool(config.pool_size)
    return WorkerPool(
        config.pool_size,
        max_queue_size=config.max_queue_size,
        admission_policy=config.admission_policy,
    )


def run_interactive(args: argparse.Namespace, settings: StressSettings) -> int:
    config = build_load_config(args, settings)
    executor = build_executor(
        args.executor, settings, duration=args.sleep, failure_rate=args.failure_rate
    )
    pool = build_pool(config, args.pool_backend)

    console.print(f"Running stress-tool {__version__} with the {args.executor} executor")
    console.print(KEY_HELP)
    # Queued work keeps draining on daemon workers after quit, so the
    # executor stays open until the process exits.
    with ConsoleCommandSource() as commands:
        controller = LoadController(
            pool,
            MetricsAggregator(),
            executor,
            probe=build_probe(args.probe),
            commands=commands,
            config=config,
            console=console,
        )
        controller.run()
    return 0


def run_burst_command(args: argparse.Namespace, settings: StressSettings) -> int:
    config = build_load_config(args, settings)
    executor = build_executor(
        args.executor, settings, duration=args.sleep, failure_rate=args.failure_rate
    )
    pool = build_pool(config, args.pool_backend)

    console.print(f"Starting burst of {args.count} requests with {config.pool_size} workers")
    try:
        result = run_burst(
            pool,
            MetricsAggregator(),
            executor,
            args.count,
            probe=build_probe(args.probe),
            port=config.probe_port,
            pid=config.probe_pid,
            timeout=args.timeout,
        )
    finally:
        executor.close()

    snap = result.snapshot
    console.print(f"Elapsed time: {result.elapsed:.2f}s")
    console.print(f"Successful requests: {snap.success_count}")
    console.print(f"Failed requests: {snap.fail_count}")
    if snap.average_latency is not None:
        console.print(
            f"Latency: min={snap.min_latency * 1000:.3f}ms, "
            f"max={snap.max_latency * 1000:.3f}ms, avg={snap.average_latency * 1000:.3f}ms"
        )

    if args.output:
        output_path = Path(args.output)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        console.print(f"Summary saved to {output_path}")

    if not result.ok:
        console.print(f"[yellow]Some requests (count: {snap.fail_count}) have failed[/yellow]")
        return 2
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    if not any(a in ("interactive", "burst") for a in argv) and not any(
        a in ("-h", "--help", "--version") for a in argv
    ):
        argv = ["interactive"] + argv
    args = parser.parse_args(argv)

    load_dotenv()
    settings = StressSettings()
    configure_logging(args.log_level or settings.log_level)

    try:
        if args.command == "burst":
            return run_burst_command(args, settings)
        return run_interactive(args, settings)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 1
    except StressToolError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
