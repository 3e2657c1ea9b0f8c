import random
from unittest.mock import MagicMock, patch

import pytest

from stress_tool.executors import SleepExecutor, build_executor
from stress_tool.settings import StressSettings
from stress_tool.utils.errors import ConfigurationError, WorkExecutionError


class TestSleepExecutor:
    def test_succeeds_by_default(self):
        SleepExecutor(0)()

    def test_always_fails_at_rate_one(self):
        with pytest.raises(WorkExecutionError):
            SleepExecutor(0, failure_rate=1.0)()

    def test_failure_rate_is_applied(self):
        executor = SleepExecutor(0, failure_rate=0.5, rng=random.Random(1))
        failures = 0
        for _ in range(200):
            try:
                executor()
            except WorkExecutionError:
                failures += 1
        assert 50 < failures < 150

    def test_invalid_failure_rate(self):
        with pytest.raises(ValueError):
            SleepExecutor(0, failure_rate=1.5)


class TestBuildExecutor:
    def test_sleep(self):
        executor = build_executor("sleep", duration=0.0, failure_rate=0.0)
        assert isinstance(executor, SleepExecutor)
        assert executor.duration == 0.0

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            build_executor("grpc")


class TestPostgresQueryExecutor:
    def _settings(self, **overrides):
        values = dict(db_pool_max=0, db_host="db", db_user="u", db_password="p")
        values.update(overrides)
        return StressSettings(**values)

    def _connection(self, row):
        conn = MagicMock()
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.fetchone.return_value = row
        return conn, cursor

    def test_runs_query_on_fresh_connection(self):
        psycopg2 = pytest.importorskip("psycopg2")
        from stress_tool.executors import PostgresQueryExecutor

        conn, cursor = self._connection((42,))
        with patch.object(psycopg2, "connect", return_value=conn) as connect:
            executor = PostgresQueryExecutor(self._settings())
            executor()

        assert "host=db" in connect.call_args.args[0]
        cursor.execute.assert_called_once_with("select 42 as result;")
        conn.close.assert_called_once()

    def test_wrong_result_raises(self):
        psycopg2 = pytest.importorskip("psycopg2")
        from stress_tool.executors import PostgresQueryExecutor

        conn, _ = self._connection((41,))
        with patch.object(psycopg2, "connect", return_value=conn):
            executor = PostgresQueryExecutor(self._settings())
            with pytest.raises(WorkExecutionError):
                executor()
        conn.close.assert_called_once()

    def test_pooled_connections_are_returned(self):
        psycopg2 = pytest.importorskip("psycopg2")
        import psycopg2.pool
        from stress_tool.executors import PostgresQueryExecutor

        conn, _ = self._connection((42,))
        pool = MagicMock()
        pool.getconn.return_value = conn
        with patch.object(psycopg2.pool, "ThreadedConnectionPool", return_value=pool):
            executor = PostgresQueryExecutor(self._settings(db_pool_max=2))
            executor()
            executor()
            executor.close()

        assert pool.getconn.call_count == 2
        pool.putconn.assert_called_with(conn, close=False)
        pool.closeall.assert_called_once()

    def test_failed_query_discards_pooled_connection(self):
        psycopg2 = pytest.importorskip("psycopg2")
        import psycopg2.pool
        from stress_tool.executors import PostgresQueryExecutor

        conn, cursor = self._connection((42,))
        cursor.execute.side_effect = RuntimeError("server closed the connection")
        pool = MagicMock()
        pool.getconn.return_value = conn
        with patch.object(psycopg2.pool, "ThreadedConnectionPool", return_value=pool):
            executor = PostgresQueryExecutor(self._settings(db_pool_max=1))
            with pytest.raises(RuntimeError):
                executor()
            # the slot is released even after a failure
            with pytest.raises(RuntimeError):
                executor()

        pool.putconn.assert_called_with(conn, close=True)


class TestHttpRequestExecutor:
    def test_get_and_raise_for_status(self):
        pytest.importorskip("httpx")
        from stress_tool.executors import HttpRequestExecutor

        client = MagicMock()
        executor = HttpRequestExecutor(StressSettings(target_url="http://svc/health"), client=client)
        executor()

        client.get.assert_called_once_with("http://svc/health")
        client.get.return_value.raise_for_status.assert_called_once()

    def test_http_errors_propagate(self):
        httpx = pytest.importorskip("httpx")
        from stress_tool.executors import HttpRequestExecutor

        client = MagicMock()
        request = httpx.Request("GET", "http://svc/health")
        client.get.return_value = httpx.Response(503, request=request)
        executor = HttpRequestExecutor(StressSettings(target_url="http://svc/health"), client=client)

        with pytest.raises(httpx.HTTPStatusError):
            executor()
