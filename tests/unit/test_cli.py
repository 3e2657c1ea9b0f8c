import json
from unittest.mock import MagicMock, patch

import pytest

from stress_tool import cli
from stress_tool.core.commands import QueueCommandSource
from stress_tool.core.pool import ExecutorPool, WorkerPool

DRY_RUN = ["--executor", "sleep", "--sleep", "0", "--probe", "none"]


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


class TestParser:
    def test_defaults_to_postgres_and_psutil(self):
        args = cli.build_parser().parse_args(["interactive"])
        assert args.executor == "postgres"
        assert args.probe == "psutil"
        assert args.pool_size == 4
        assert args.interval == 0.5

    def test_burst_requires_count(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["burst"])


class TestBuildPool:
    def test_simple_pool(self):
        args = cli.build_parser().parse_args(["interactive", "--pool-size", "2", "--max-queue-size", "8"])
        config = cli.build_load_config(args, cli.StressSettings())
        pool = cli.build_pool(config, "simple")
        try:
            assert isinstance(pool, WorkerPool)
            assert pool.size == 2
        finally:
            pool.shutdown()

    def test_executor_pool(self):
        args = cli.build_parser().parse_args(["interactive", "--pool-size", "3"])
        config = cli.build_load_config(args, cli.StressSettings())
        pool = cli.build_pool(config, "executor")
        try:
            assert isinstance(pool, ExecutorPool)
        finally:
            pool.shutdown()

    def test_executor_pool_cannot_be_bounded(self):
        args = cli.build_parser().parse_args(["interactive", "--max-queue-size", "8"])
        config = cli.build_load_config(args, cli.StressSettings())
        with pytest.raises(cli.ConfigurationError):
            cli.build_pool(config, "executor")

    def test_probe_pid_is_current_process_by_default(self):
        import os

        args = cli.build_parser().parse_args(["interactive"])
        assert cli.build_load_config(args, cli.StressSettings()).probe_pid == os.getpid()
        args = cli.build_parser().parse_args(["interactive", "--all-processes"])
        assert cli.build_load_config(args, cli.StressSettings()).probe_pid is None


class TestMain:
    def test_burst_success(self, tmp_path):
        output = tmp_path / "burst.json"
        code = cli.main(["burst", "20", *DRY_RUN, "--output", str(output)])

        assert code == 0
        summary = json.loads(output.read_text(encoding="utf-8"))
        assert summary["success_count"] == 20
        assert summary["fail_count"] == 0
        assert summary["ok"] is True

    def test_burst_failures_exit_2(self):
        assert cli.main(["burst", "5", *DRY_RUN, "--failure-rate", "1"]) == 2

    def test_invalid_options_exit_1(self):
        assert cli.main(["burst", "5", *DRY_RUN, "--pool-size", "0"]) == 1

    def test_interactive_runs_until_quit(self):
        with patch.object(cli, "ConsoleCommandSource") as source_cls:
            source_cls.return_value.__enter__.return_value = QueueCommandSource("2q")
            code = cli.main(["interactive", *DRY_RUN, "--interval", "0.01"])
        assert code == 0

    def test_quit_leaves_executor_open_for_queued_work(self):
        executor = MagicMock(return_value=None)
        with patch.object(cli, "build_executor", return_value=executor), patch.object(
            cli, "ConsoleCommandSource"
        ) as source_cls:
            source_cls.return_value.__enter__.return_value = QueueCommandSource("1q")
            code = cli.main(["interactive", *DRY_RUN, "--interval", "0.01"])

        assert code == 0
        executor.close.assert_not_called()

    def test_subcommand_defaults_to_interactive(self):
        with patch.object(cli, "run_interactive", return_value=0) as run:
            assert cli.main(DRY_RUN) == 0
        args = run.call_args.args[0]
        assert args.command == "interactive"
        assert args.executor == "sleep"
