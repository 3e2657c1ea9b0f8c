"""Configuration for a single load-generation session."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BATCH_SIZES = [1, 4, 16, 64, 256, 1024, 4096, 16384, 131072]


class LoadConfig(BaseModel):
    """Knobs for the worker pool and the load controller."""
    model_config = ConfigDict(extra="forbid")

    pool_size: int = Field(default=4, ge=1)
    tick_interval: float = Field(default=0.5, gt=0)

    # Random mode draws from [random_low, random_high) every tick
    random_low: int = -800
    random_high: int = 400
    random_enabled: bool = False
    seed: Optional[int] = None

    # Digit keys 1-9 map onto these in order
    batch_sizes: List[int] = Field(default_factory=lambda: list(DEFAULT_BATCH_SIZES))

    # Connection probe
    probe_port: int = Field(default=5432, ge=1, le=65535)
    probe_pid: Optional[int] = None

    # Admission control; None keeps the queue unbounded
    max_queue_size: Optional[int] = Field(default=None, ge=1)
    admission_policy: Literal["reject", "block"] = "reject"

    @field_validator("batch_sizes", mode="before")
    @classmethod
    def normalize_batch_sizes(cls, v):
        if isinstance(v, str):
            return [int(s.strip()) for s in v.split(",") if s.strip()]
        return v

    @field_validator("batch_sizes")
    @classmethod
    def validate_batch_sizes(cls, v: List[int]) -> List[int]:
        if len(v) != 9:
            raise ValueError("batch_sizes must have exactly nine entries (keys 1-9)")
        if any(size <= 0 for size in v):
            raise ValueError("batch_sizes must be positive")
        return v

    @model_validator(mode="after")
    def check_random_range(self) -> "LoadConfig":
        if self.random_high <= self.random_low:
            raise ValueError("random_high must be greater than random_low")
        return self

    def batch_for_key(self, key: str) -> Optional[int]:
        """Return the batch size bound to a digit key, or None."""
        if len(key) == 1 and "1" <= key <= "9":
            return self.batch_sizes[int(key) - 1]
        return None
