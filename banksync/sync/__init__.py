"""
Synchronization engine.

Keeps a persisted dedup ledger of forwarded transactions and drives
reconciliation cycles from the source bank to the destination.
"""

from banksync.sync.engine import CycleAbortedError, ReconciliationEngine
from banksync.sync.ledger import (
    Ledger,
    LedgerCorruptError,
    LedgerPersistError,
    LedgerStore,
)
from banksync.sync.metrics import CycleStatus, SyncMetrics
from banksync.sync.scheduler import SyncScheduler

__all__ = [
    "CycleAbortedError",
    "CycleStatus",
    "Ledger",
    "LedgerCorruptError",
    "LedgerPersistError",
    "LedgerStore",
    "ReconciliationEngine",
    "SyncMetrics",
    "SyncScheduler",
]
