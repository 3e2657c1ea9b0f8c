from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _dsn_value(value: object) -> str:
    """Quote a libpq keyword value so spaces and quotes survive."""
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


class StressSettings(BaseSettings):
    """Environment-driven settings for the backends under load."""

    model_config = SettingsConfigDict(
        env_prefix="STRESS_TOOL_", env_file=".env", extra="ignore"
    )

    # PostgreSQL target
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="postgres")
    db_user: str = Field(default="npgsql_tests")
    db_password: str = Field(default="npgsql_tests")
    db_query: str = Field(default="select 42 as result;")
    db_expected_result: int = Field(default=42)

    # Client-side pool; 0 disables pooling
    db_pool_min: int = Field(default=0, ge=0)
    db_pool_max: int = Field(default=2, ge=0)
    db_connection_lifetime: int = Field(default=15)  # seconds
    db_connect_timeout: int = Field(default=240)  # seconds
    db_command_timeout: int = Field(default=240)  # seconds

    # HTTP target
    target_url: str = Field(default="http://localhost:8000/health")
    http_timeout: float = Field(default=30.0, gt=0)

    log_level: str = Field(default="INFO")

    def dsn(self) -> str:
        """libpq connection string for the configured database."""
        params = {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "connect_timeout": self.db_connect_timeout,
            "options": f"-c statement_timeout={self.db_command_timeout * 1000}",
        }
        return " ".join(f"{key}={_dsn_value(value)}" for key, value in params.items())
