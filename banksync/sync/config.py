"""
Sync engine configuration.

Defines the retry policy used by the HTTP transport and the
windows and interval that drive the reconciliation loop.
"""

from datetime import timedelta
from pydantic import BaseModel, Field, model_validator


class RetryConfig(BaseModel):
    """Configuration for transport retries with exponential backoff."""

    max_attempts: int = Field(
        default=6, ge=1, description="Maximum request attempts, first try included"
    )
    initial_delay: float = Field(
        default=1.0, gt=0, description="Initial delay in seconds"
    )
    max_delay: float = Field(default=30.0, gt=0, description="Maximum delay in seconds")
    exponential_base: float = Field(default=2.0, gt=1, description="Backoff multiplier")
    jitter: bool = Field(
        default=True, description="Add random jitter to prevent thundering herd"
    )


class SyncConfig(BaseModel):
    """Reconciliation loop and scheduler settings."""

    sync_interval_hours: float = Field(
        default=1, gt=0, description="Hours between the starts of two cycles"
    )
    lookback_days: int = Field(
        default=7, ge=1, description="Days of source transactions fetched per cycle"
    )
    retention_days: int = Field(
        default=7, ge=1, description="Days a ledger entry is kept before pruning"
    )

    @model_validator(mode="after")
    def _retention_covers_lookback(self) -> "SyncConfig":
        # A pruned entry still inside the lookback window would be posted again.
        if self.retention_days < self.lookback_days:
            raise ValueError(
                f"retention_days ({self.retention_days}) must be at least "
                f"lookback_days ({self.lookback_days})"
            )
        return self

    def get_interval_seconds(self) -> float:
        """Get cycle interval in seconds."""
        return self.sync_interval_hours * 3600

    def get_lookback_timedelta(self) -> timedelta:
        """Get lookback period as timedelta."""
        return timedelta(days=self.lookback_days)

    def get_retention_timedelta(self) -> timedelta:
        """Get retention period as timedelta."""
        return timedelta(days=self.retention_days)
