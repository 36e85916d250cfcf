"""
Reconciliation cycle metrics.

Tracks per-cycle counts and durations and keeps a short in-memory
history for logging and the CLI summary.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from enum import Enum


class CycleStatus(str, Enum):
    """Outcome of a reconciliation cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some accounts skipped after fetch failures
    FAILED = "failed"


@dataclass
class CycleRunMetrics:
    """Metrics for a single reconciliation cycle."""

    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: CycleStatus = CycleStatus.SUCCESS

    accounts_total: int = 0
    accounts_processed: int = 0
    accounts_skipped: List[str] = field(default_factory=list)

    transactions_fetched: int = 0
    transactions_posted: int = 0
    transactions_already_synced: int = 0

    ledger_pruned: int = 0
    ledger_size: int = 0
    persisted: bool = False

    duration_seconds: float = 0.0

    errors: List[str] = field(default_factory=list)
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and display."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["status"] = self.status.value
        return data


class SyncMetrics:
    """
    In-memory metrics tracker for the reconciliation engine.

    Tracks the current cycle and keeps a bounded history of
    finished cycles.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._current_run: Optional[CycleRunMetrics] = None
        self._history: List[CycleRunMetrics] = []
        self._run_counter = 0

    def start_run(self, now: Optional[datetime] = None) -> CycleRunMetrics:
        """Start tracking a new cycle."""
        now = now or datetime.now(timezone.utc)
        self._run_counter += 1
        run_id = f"sync-{now.strftime('%Y%m%d-%H%M%S')}-{self._run_counter}"
        self._current_run = CycleRunMetrics(run_id=run_id, started_at=now)
        return self._current_run

    def end_run(
        self, status: CycleStatus, now: Optional[datetime] = None
    ) -> Optional[CycleRunMetrics]:
        """Finish the current cycle and move it into history."""
        run = self._current_run
        if not run:
            return None

        run.ended_at = now or datetime.now(timezone.utc)
        run.status = status
        run.duration_seconds = max(
            (run.ended_at - run.started_at).total_seconds(), 0.0
        )

        self._history.append(run)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size :]

        self._current_run = None
        return run

    def record_error(self, error: str):
        if self._current_run:
            self._current_run.errors.append(error)
            self._current_run.error_count += 1

    def get_current_run(self) -> Optional[CycleRunMetrics]:
        return self._current_run

    def get_last_run(self) -> Optional[CycleRunMetrics]:
        """Get metrics for the most recent finished cycle."""
        return self._history[-1] if self._history else None

    def get_history(self, limit: Optional[int] = None) -> List[CycleRunMetrics]:
        """Recent cycles, newest first."""
        history = list(reversed(self._history))
        if limit:
            history = history[:limit]
        return history

    def consecutive_failures(self) -> int:
        """Number of failed cycles since the last non-failed one."""
        count = 0
        for run in reversed(self._history):
            if run.status != CycleStatus.FAILED:
                break
            count += 1
        return count
