"""
Reconciliation engine.

Forwards settled source transactions to the destination exactly once
per ledger entry: each cycle prunes the ledger, fetches every account's
lookback window, posts what the ledger has not seen and persists the
ledger only when the whole cycle succeeded.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from banksync.sync.clients.base import (
    APIError,
    Account,
    DestinationClient,
    DestinationTransaction,
    SourceClient,
    Transaction,
)
from banksync.sync.config import SyncConfig
from banksync.sync.ledger import Ledger, LedgerPersistError, LedgerStore
from banksync.sync.metrics import CycleRunMetrics, CycleStatus, SyncMetrics

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CycleAbortedError(Exception):
    """Raised when a post fails and the cycle is abandoned without persisting."""

    def __init__(
        self,
        message: str,
        account: Account,
        transaction_id: str,
        posted_unrecorded: int = 0,
    ):
        super().__init__(message)
        self.account = account
        self.transaction_id = transaction_id
        self.posted_unrecorded = posted_unrecorded


class ReconciliationEngine:
    """
    Drives one reconciliation pass across all accounts per call.

    The engine owns the ledger. A cycle works on a pruned copy which
    replaces the engine's ledger only after it was persisted, so an
    aborted cycle leaves both disk and memory at the last snapshot.
    """

    def __init__(
        self,
        source: SourceClient,
        destination: DestinationClient,
        store: LedgerStore,
        accounts: List[Account],
        route_id: str,
        config: Optional[SyncConfig] = None,
        ledger: Optional[Ledger] = None,
        metrics: Optional[SyncMetrics] = None,
        clock: Clock = utcnow,
    ):
        """
        Initialize the engine.

        Args:
            source: Source bank client
            destination: Destination accounting client
            store: Ledger persistence
            accounts: Source accounts to poll, in polling order
            route_id: Destination bank integration id attached to every post
            config: Sync windows (defaults to SyncConfig())
            ledger: Ledger loaded at startup (defaults to empty)
            metrics: Metrics tracker
            clock: Returns the current UTC time
        """
        self.source = source
        self.destination = destination
        self.store = store
        self.accounts = list(accounts)
        self.route_id = route_id
        self.config = config or SyncConfig()
        self.ledger = ledger if ledger is not None else Ledger()
        self.metrics = metrics or SyncMetrics()
        self._clock = clock

    @classmethod
    async def bootstrap(
        cls,
        source: SourceClient,
        destination: DestinationClient,
        store: LedgerStore,
        provider_name: str,
        config: Optional[SyncConfig] = None,
        clock: Clock = utcnow,
    ) -> "ReconciliationEngine":
        """
        Resolve everything a cycle needs once at startup.

        Raises:
            LedgerCorruptError: If the persisted ledger is malformed
            RouteNotFoundError: If the destination has no matching integration
            APIError: If integrations or accounts cannot be fetched
        """
        ledger = store.load()
        logger.info("sync.ledger_loaded", entries=len(ledger), path=str(store.path))

        route_id = await destination.resolve_route(provider_name)
        logger.info("sync.route_resolved", provider=provider_name, route_id=route_id)

        accounts = await source.list_accounts()
        logger.info(
            "sync.accounts_resolved",
            count=len(accounts),
            accounts=[a.name or a.id for a in accounts],
        )

        return cls(
            source,
            destination,
            store,
            accounts,
            route_id,
            config=config,
            ledger=ledger,
            clock=clock,
        )

    async def run_cycle(self) -> CycleRunMetrics:
        """
        Execute a single reconciliation cycle.

        Returns:
            Metrics of the finished cycle

        Raises:
            CycleAbortedError: A post failed; nothing was persisted
            LedgerPersistError: The ledger could not be written
        """
        now = self._clock()
        run = self.metrics.start_run(now)
        run.accounts_total = len(self.accounts)

        working = self.ledger.prune(now, self.config.get_retention_timedelta())
        run.ledger_pruned = len(self.ledger) - len(working)
        since = now - self.config.get_lookback_timedelta()

        logger.debug(
            "sync.cycle_started",
            run_id=run.run_id,
            since=since.isoformat(),
            accounts=len(self.accounts),
            ledger_entries=len(working),
            pruned=run.ledger_pruned,
        )

        try:
            for account in self.accounts:
                await self._sync_account(account, since, working, run)
            self.store.persist(working)
        except Exception as e:
            self._log_failure(e, run)
            self.metrics.record_error(str(e))
            self.metrics.end_run(CycleStatus.FAILED, now=self._clock())
            raise

        self.ledger = working
        run.persisted = True
        run.ledger_size = len(working)

        status = CycleStatus.PARTIAL if run.accounts_skipped else CycleStatus.SUCCESS
        self.metrics.end_run(status, now=self._clock())

        log = logger.info if run.transactions_posted else logger.debug
        log(
            "sync.cycle_completed",
            run_id=run.run_id,
            status=status.value,
            posted=run.transactions_posted,
            already_synced=run.transactions_already_synced,
            skipped_accounts=run.accounts_skipped,
            ledger_entries=run.ledger_size,
        )
        return run

    async def _sync_account(
        self,
        account: Account,
        since: datetime,
        working: Ledger,
        run: CycleRunMetrics,
    ) -> None:
        logger.debug("sync.processing_account", account=account.name, account_id=account.id)

        try:
            transactions = await self.source.list_transactions(account, since)
        except APIError as e:
            # Retried by the next cycle; the rest of this cycle goes on
            logger.error(
                "sync.fetch_failed",
                run_id=run.run_id,
                account=account.name,
                account_id=account.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            run.accounts_skipped.append(account.id)
            self.metrics.record_error(f"fetch {account.id}: {e}")
            return

        run.accounts_processed += 1
        run.transactions_fetched += len(transactions)

        posted = 0
        for tx in transactions:
            if tx.id in working:
                logger.debug("sync.already_synced", account=account.name, transaction_id=tx.id)
                run.transactions_already_synced += 1
                continue

            await self._post(account, tx, run)
            working.record(tx.id, self._clock())
            run.transactions_posted += 1
            posted += 1

        if posted:
            logger.info(
                "sync.account_completed",
                account=account.name,
                account_id=account.id,
                transactions=posted,
            )

    async def _post(
        self, account: Account, tx: Transaction, run: CycleRunMetrics
    ) -> None:
        record = DestinationTransaction.from_transaction(tx, self.route_id)
        try:
            await self.destination.create_bank_transaction(record)
        except APIError as e:
            raise CycleAbortedError(
                f"error posting transaction {tx.id} of account {account.name or account.id}: {e}",
                account=account,
                transaction_id=tx.id,
                posted_unrecorded=run.transactions_posted,
            ) from e

        logger.debug(
            "sync.transaction_posted",
            account=account.name,
            transaction_id=tx.id,
            amount=str(record.amount),
            base_type=record.base_type.value,
            date=record.date.isoformat(),
        )

    def _log_failure(self, error: Exception, run: CycleRunMetrics) -> None:
        if isinstance(error, CycleAbortedError):
            logger.error(
                "sync.cycle_aborted",
                run_id=run.run_id,
                account=error.account.name,
                account_id=error.account.id,
                transaction_id=error.transaction_id,
                error=str(error.__cause__ or error),
            )
            if error.posted_unrecorded:
                # These were accepted by the destination but are not in the
                # ledger, so the next cycle will post them again
                logger.warning(
                    "sync.posted_transactions_will_repeat",
                    run_id=run.run_id,
                    count=error.posted_unrecorded,
                )
        elif isinstance(error, LedgerPersistError):
            logger.error(
                "sync.ledger_persist_failed",
                run_id=run.run_id,
                posted=run.transactions_posted,
                error=str(error),
            )
        else:
            logger.error(
                "sync.cycle_failed",
                run_id=run.run_id,
                error=str(error),
                error_type=type(error).__name__,
                exc_info=True,
            )
