"""
Dedup ledger of transactions already posted to the destination.

The ledger maps transaction ids to the time they were first posted.
It is loaded once at startup, pruned and extended by each cycle, and
written back as a whole snapshot when a cycle succeeds.
"""

import os
import re
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)

_SUB_MICROSECONDS = re.compile(r"(\.\d{6})\d+")


class LedgerCorruptError(Exception):
    """Raised when a ledger snapshot exists but cannot be read."""

    pass


class LedgerPersistError(Exception):
    """Raised when a ledger snapshot cannot be written."""

    pass


class LedgerSnapshot(BaseModel):
    """On-disk format of the ledger."""

    processed_tx_ids: Dict[str, datetime] = Field(default_factory=dict)

    @field_validator("processed_tx_ids", mode="before")
    @classmethod
    def _trim_sub_microseconds(cls, value: Any) -> Any:
        # Older snapshots carry nanosecond timestamps and may store null
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        return {
            tx_id: _SUB_MICROSECONDS.sub(r"\1", seen_at)
            if isinstance(seen_at, str)
            else seen_at
            for tx_id, seen_at in value.items()
        }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Ledger:
    """In-memory mapping of transaction id to first-seen time."""

    def __init__(self, entries: Optional[Mapping[str, datetime]] = None):
        self._entries: Dict[str, datetime] = {
            tx_id: _as_utc(seen_at) for tx_id, seen_at in (entries or {}).items()
        }

    def contains(self, tx_id: str) -> bool:
        return tx_id in self._entries

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ledger):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"Ledger(entries={len(self._entries)})"

    def get(self, tx_id: str) -> Optional[datetime]:
        """First-seen time of a transaction, or None."""
        return self._entries.get(tx_id)

    def record(self, tx_id: str, now: datetime) -> None:
        """Insert or overwrite the entry for ``tx_id``."""
        self._entries[tx_id] = _as_utc(now)

    def prune(self, now: datetime, retention: timedelta) -> "Ledger":
        """
        Return a new ledger without entries first seen before ``now - retention``.

        Does not modify this ledger.
        """
        cutoff = _as_utc(now) - retention
        return Ledger(
            {
                tx_id: seen_at
                for tx_id, seen_at in self._entries.items()
                if seen_at >= cutoff
            }
        )

    def copy(self) -> "Ledger":
        return Ledger(self._entries)

    def entries(self) -> Dict[str, datetime]:
        """Copy of the underlying mapping."""
        return dict(self._entries)

    def to_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(processed_tx_ids=dict(self._entries))


class LedgerStore:
    """
    Loads and persists the ledger as a JSON snapshot file.

    Writes go to a temporary file in the same directory which then
    replaces the snapshot, so a failed write never leaves a truncated
    snapshot behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Ledger:
        """
        Load the ledger, or an empty one if no snapshot exists.

        Raises:
            LedgerCorruptError: If the snapshot exists but is unreadable
                or malformed
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            logger.debug("ledger.not_found", path=str(self.path))
            return Ledger()
        except OSError as e:
            raise LedgerCorruptError(
                f"error reading state file {self.path}: {e}"
            ) from e

        try:
            snapshot = LedgerSnapshot.model_validate_json(data)
        except ValidationError as e:
            raise LedgerCorruptError(
                f"error parsing state file {self.path}: {e}"
            ) from e

        ledger = Ledger(snapshot.processed_tx_ids)
        logger.debug("ledger.loaded", path=str(self.path), entries=len(ledger))
        return ledger

    def persist(self, ledger: Ledger) -> None:
        """
        Replace the snapshot with ``ledger``.

        Raises:
            LedgerPersistError: If the snapshot could not be written; the
                previous snapshot is left untouched
        """
        data = ledger.to_snapshot().model_dump_json(indent=2)
        directory = self.path.parent

        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LedgerPersistError(
                f"error creating state directory {directory}: {e}"
            ) from e

        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise LedgerPersistError(
                f"error writing state file {self.path}: {e}"
            ) from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("ledger.tmp_cleanup_failed", path=tmp_path)

        logger.debug("ledger.persisted", path=str(self.path), entries=len(ledger))
