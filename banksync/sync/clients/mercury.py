"""Mercury banking API client (source side)."""

from datetime import datetime, timezone
from typing import List, Optional

import structlog
from pydantic import BaseModel

from banksync.sync.clients.base import Account, SourceClient, Transaction
from banksync.sync.clients.http import HTTPTransport, parse_response
from banksync.sync.config import RetryConfig

logger = structlog.get_logger()

MERCURY_BASE_URL = "https://api.mercury.com/api/v1"

# Only transactions that have left the pending state
SETTLED_STATUS = "sent"


class _AccountsResponse(BaseModel):
    accounts: List[Account] = []


class _TransactionsResponse(BaseModel):
    transactions: List[Transaction] = []


class MercuryClient(SourceClient):
    """Reads accounts and settled transactions from Mercury."""

    def __init__(self, transport: HTTPTransport):
        self.transport = transport

    @classmethod
    def create(
        cls,
        api_key: str,
        base_url: str = MERCURY_BASE_URL,
        timeout: float = 30.0,
        retry: Optional[RetryConfig] = None,
    ) -> "MercuryClient":
        """Build a client with its own authenticated transport."""
        transport = HTTPTransport(
            base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            retry=retry,
        )
        return cls(transport)

    def get_source_name(self) -> str:
        return "mercury"

    async def list_accounts(self) -> List[Account]:
        logger.debug("mercury.fetching_accounts")
        body = await self.transport.request("GET", "/accounts")
        return parse_response(_AccountsResponse, body, "accounts").accounts

    async def list_transactions(
        self, account: Account, since: datetime
    ) -> List[Transaction]:
        start = format_timestamp(since)
        logger.debug(
            "mercury.fetching_transactions", account=account.name, since=start
        )
        body = await self.transport.request(
            "GET",
            f"/account/{account.id}/transactions",
            params={"status": SETTLED_STATUS, "start": start},
        )
        return parse_response(_TransactionsResponse, body, "transactions").transactions


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC, second precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
