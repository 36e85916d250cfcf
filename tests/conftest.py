from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest

from banksync.sync.clients.base import (
    APIConnectionError,
    APIResponseError,
    Account,
    BankIntegration,
    DestinationClient,
    DestinationTransaction,
    SourceClient,
    Transaction,
)
from banksync.sync.config import SyncConfig
from banksync.sync.engine import ReconciliationEngine
from banksync.sync.ledger import LedgerStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

ROUTE_ID = "bi_mercury"


class FakeSource(SourceClient):
    """In-memory source bank with per-account failure switches."""

    def __init__(
        self,
        transactions: Dict[str, List[Transaction]],
        accounts: Optional[List[Account]] = None,
        failing: Iterable[str] = (),
    ):
        self.transactions = transactions
        self.accounts = accounts or [Account(id=a, name=a.upper()) for a in transactions]
        self.failing = set(failing)
        self.fetches: List[tuple] = []

    async def list_accounts(self) -> List[Account]:
        return list(self.accounts)

    async def list_transactions(self, account: Account, since: datetime) -> List[Transaction]:
        self.fetches.append((account.id, since))
        if account.id in self.failing:
            raise APIConnectionError(f"connection refused for {account.id}")
        return list(self.transactions.get(account.id, []))


class FakeDestination(DestinationClient):
    """Records posted transactions; rejects descriptions listed in ``reject``."""

    def __init__(
        self,
        integrations: Optional[List[BankIntegration]] = None,
        reject: Iterable[str] = (),
    ):
        self.integrations = (
            integrations
            if integrations is not None
            else [
                BankIntegration(id="bi_other", provider_name="Other Bank"),
                BankIntegration(id=ROUTE_ID, provider_name="Mercury"),
            ]
        )
        self.reject = set(reject)
        self.posted: List[DestinationTransaction] = []
        self.attempts: List[DestinationTransaction] = []

    async def list_bank_integrations(self) -> List[BankIntegration]:
        return list(self.integrations)

    async def create_bank_transaction(self, tx: DestinationTransaction) -> None:
        self.attempts.append(tx)
        if tx.description in self.reject:
            raise APIResponseError("422 unprocessable", status_code=422)
        self.posted.append(tx)


def make_tx(
    tx_id: str,
    amount: str = "10.00",
    description: Optional[str] = None,
    posted_at: Optional[datetime] = None,
) -> Transaction:
    return Transaction(
        id=tx_id,
        amount=Decimal(amount),
        bankDescription=description or f"payment {tx_id}",
        postedAt=posted_at or NOW - timedelta(days=1),
    )


@pytest.fixture
def tx_factory():
    """Build source transactions."""
    return make_tx


@pytest.fixture
def store(tmp_path):
    """Ledger store in a directory that does not exist yet."""
    return LedgerStore(tmp_path / "data" / "sync_state.json")


@pytest.fixture
def source_factory():
    return FakeSource


@pytest.fixture
def destination():
    return FakeDestination()


@pytest.fixture
def destination_factory():
    return FakeDestination


@pytest.fixture
def clock():
    """Mutable clock; set ``clock.now`` to move time."""

    class Clock:
        def __init__(self):
            self.now = NOW

        def __call__(self) -> datetime:
            return self.now

    return Clock()


@pytest.fixture
def engine_factory(store, destination, clock):
    """Build an engine around a source, sharing the store and destination fixtures."""

    def build(source: FakeSource, ledger=None, config: Optional[SyncConfig] = None, dest=None):
        return ReconciliationEngine(
            source=source,
            destination=dest or destination,
            store=store,
            accounts=source.accounts,
            route_id=ROUTE_ID,
            config=config or SyncConfig(),
            ledger=ledger,
            clock=clock,
        )

    return build
