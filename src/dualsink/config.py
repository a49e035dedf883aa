"""Runtime configuration for dualsink.

Settings are read from the environment with the DUALSINK_ prefix; nested
groups use a double underscore, e.g. DUALSINK_CLEANUP__RETENTION_DAYS=14.
Sampling rates take a JSON object: DUALSINK_FILTERS__SAMPLING_RATES='{"query": 0.1}'.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EVENT_TYPES = [
    "request",
    "query",
    "exception",
    "job",
    "queued_job",
    "log",
    "cache",
    "mail",
    "notification",
    "scheduled_task",
    "test",
]


class FilterSettings(BaseModel):
    """Which records are persisted."""

    event_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EVENT_TYPES),
        description="Allow-list of event types; empty means every type",
    )
    sampling_rates: dict[str, float] = Field(
        default_factory=dict,
        description="Per-type sampling rate in [0, 1]; missing types use 1.0",
    )
    disabled_types: list[str] = Field(
        default_factory=list, description="Deny-list of event types"
    )

    @field_validator("sampling_rates")
    @classmethod
    def _rates_in_unit_interval(cls, rates: dict[str, float]) -> dict[str, float]:
        for event_type, rate in rates.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(
                    f"sampling rate for {event_type!r} must be between 0 and 1, got {rate}"
                )
        return rates


class CleanupSettings(BaseModel):
    """Retention of raw metric rows."""

    enabled: bool = True
    retention_days: int = Field(default=30, ge=1)
    batch_size: int = Field(default=1000, ge=1)


class AggregationSettings(BaseModel):
    """Rollup scheduling."""

    enabled: bool = True
    schedule: str = Field(default="0 * * * *", description="Cron expression")
    batch_size: int = Field(default=10000, ge=1)


class PerformanceSettings(BaseModel):
    """Thresholds used by the classification helpers."""

    slow_request_threshold: float = Field(default=1000, description="milliseconds")
    slow_query_threshold: float = Field(default=100, description="milliseconds")
    memory_threshold: int = Field(default=128 * 1024 * 1024, description="bytes")


class DualSinkSettings(BaseSettings):
    """Top-level settings for the mirrored ingest pipeline."""

    enabled: bool = Field(default=True, description="Mirror records to the database")
    auto_configure: bool = Field(
        default=True, description="Wire the pipeline automatically at startup"
    )
    buffer_size: int = Field(default=100, ge=1, description="Records per digest")
    buffer_backend: Literal["memory", "sqlite", "redis"] = "sqlite"
    buffer_ttl_seconds: float = Field(default=3600, gt=0)
    database_path: str = Field(default="dualsink.db")
    redis_url: str = Field(default="redis://localhost:6379/0")
    buffer_key: str = Field(default="dualsink:buffer")
    environment: str | None = None
    app_version: str | None = None

    filters: FilterSettings = Field(default_factory=FilterSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)

    model_config = SettingsConfigDict(
        env_prefix="DUALSINK_",
        env_nested_delimiter="__",
        extra="ignore",
    )
