"""
Pipeline Configuration
Polling cadence, attempt ceiling and batch retention for one pipeline run.

Values come from explicit arguments first, then environment variables:
    SP_API_POLL_INTERVAL: Seconds between status checks (default: 20)
    SP_API_MAX_POLL_ATTEMPTS: Status checks before giving up (default: 30)
    REPORT_BATCH_RETENTION: Batches kept per scope (default: 3)
"""

import os
from dataclasses import dataclass, replace

from sp_reports.utils.report_types import get_report_policy

DEFAULT_POLL_INTERVAL = 20.0
DEFAULT_MAX_POLL_ATTEMPTS = 30
DEFAULT_RETENTION_COUNT = 3


@dataclass(frozen=True)
class PipelineConfig:
    """Per-invocation policy for the report pipeline."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    retention_count: int = DEFAULT_RETENTION_COUNT

    def __post_init__(self):
        if self.poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        if self.max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be >= 1")
        if self.retention_count < 1:
            raise ValueError("retention_count must be >= 1")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a config from environment variables, falling back to defaults."""
        return cls(
            poll_interval=float(os.environ.get("SP_API_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)),
            max_poll_attempts=int(os.environ.get("SP_API_MAX_POLL_ATTEMPTS", DEFAULT_MAX_POLL_ATTEMPTS)),
            retention_count=int(os.environ.get("REPORT_BATCH_RETENTION", DEFAULT_RETENTION_COUNT)),
        )

    def for_report_type(self, report_type: str) -> "PipelineConfig":
        """Apply the report type's polling overrides, if it has any."""
        policy = get_report_policy(report_type)
        overrides = {}
        if "poll_interval" in policy:
            overrides["poll_interval"] = policy["poll_interval"]
        if "max_poll_attempts" in policy:
            overrides["max_poll_attempts"] = policy["max_poll_attempts"]
        return replace(self, **overrides) if overrides else self

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound on time spent waiting for Amazon to finish a report."""
        return self.poll_interval * self.max_poll_attempts
