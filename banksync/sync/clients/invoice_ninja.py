"""Invoice Ninja API client (destination side)."""

from typing import Any, List, Optional

import structlog
from pydantic import BaseModel

from banksync.sync.clients.base import (
    BankIntegration,
    DestinationClient,
    DestinationTransaction,
)
from banksync.sync.clients.http import HTTPTransport, parse_response
from banksync.sync.config import RetryConfig

logger = structlog.get_logger()


class _IntegrationsResponse(BaseModel):
    data: List[BankIntegration] = []


class _CreatedResponse(BaseModel):
    data: Any = None


class InvoiceNinjaClient(DestinationClient):
    """Posts bank transactions into an Invoice Ninja bank integration."""

    def __init__(self, transport: HTTPTransport):
        self.transport = transport

    @classmethod
    def create(
        cls,
        token: str,
        url: str,
        timeout: float = 30.0,
        retry: Optional[RetryConfig] = None,
    ) -> "InvoiceNinjaClient":
        """Build a client for the instance at ``url`` (without /api/v1)."""
        transport = HTTPTransport(
            url.rstrip("/") + "/api/v1",
            headers={
                "X-API-Token": token,
                "X-Requested-With": "XMLHttpRequest",
            },
            timeout=timeout,
            retry=retry,
        )
        return cls(transport)

    async def list_bank_integrations(self) -> List[BankIntegration]:
        logger.debug("invoice_ninja.fetching_bank_integrations")
        body = await self.transport.request("GET", "/bank_integrations")
        return parse_response(_IntegrationsResponse, body, "bank integrations").data

    async def create_bank_transaction(self, tx: DestinationTransaction) -> None:
        logger.debug(
            "invoice_ninja.creating_bank_transaction",
            amount=str(tx.amount),
            base_type=tx.base_type.value,
            description=tx.description,
        )
        body = await self.transport.request(
            "POST", "/bank_transactions", json=tx.model_dump(mode="json")
        )
        parse_response(_CreatedResponse, body, "bank transaction")
