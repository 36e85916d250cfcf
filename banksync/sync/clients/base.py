"""
Source and destination client interfaces.

Defines the records exchanged with the two external APIs, the
contracts the reconciliation engine depends on, and the error
hierarchy shared by all client implementations.
"""

from abc import ABC, abstractmethod
from datetime import date as Date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Account(BaseModel):
    """A source-side account to poll."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = ""


class Transaction(BaseModel):
    """A settled transaction as reported by the source bank."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str
    amount: Decimal
    bank_description: str = Field(default="", alias="bankDescription")
    posted_at: datetime = Field(alias="postedAt")

    @field_validator("bank_description", mode="before")
    @classmethod
    def _null_description_is_empty(cls, v: Optional[str]) -> str:
        return "" if v is None else v


class BankIntegration(BaseModel):
    """A bank integration configured on the destination side."""

    model_config = ConfigDict(extra="ignore")

    id: str
    provider_name: str = ""


class BaseType(str, Enum):
    """Destination category carrying the sign of a transaction."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class DestinationTransaction(BaseModel):
    """Body of a bank transaction posted to the destination."""

    amount: Decimal = Field(ge=0)
    date: Date
    description: str
    bank_integration_id: str
    base_type: BaseType

    @field_serializer("amount")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)

    @classmethod
    def from_transaction(
        cls, tx: Transaction, bank_integration_id: str
    ) -> "DestinationTransaction":
        """
        Translate a source transaction into a destination record.

        The sign moves into ``base_type`` (positive -> CREDIT, anything
        else -> DEBIT) and the amount is always sent unsigned.
        """
        return cls(
            amount=abs(tx.amount),
            date=tx.posted_at.date(),
            description=tx.bank_description,
            bank_integration_id=bank_integration_id,
            base_type=BaseType.CREDIT if tx.amount > 0 else BaseType.DEBIT,
        )


class SourceClient(ABC):
    """
    Contract for the source banking API.

    Implementations must only return settled transactions.
    """

    @abstractmethod
    async def list_accounts(self) -> List[Account]:
        """
        List the accounts to poll.

        Raises:
            APIError: If the accounts cannot be fetched
        """
        pass

    @abstractmethod
    async def list_transactions(
        self, account: Account, since: datetime
    ) -> List[Transaction]:
        """
        List settled transactions of an account posted since a point in time.

        Args:
            account: Account to fetch
            since: Lower bound of the lookback window

        Returns:
            Transactions in the order returned by the API

        Raises:
            APIError: If the fetch fails
        """
        pass

    def get_source_name(self) -> str:
        return type(self).__name__


class DestinationClient(ABC):
    """Contract for the destination accounting API."""

    @abstractmethod
    async def list_bank_integrations(self) -> List[BankIntegration]:
        pass

    @abstractmethod
    async def create_bank_transaction(self, tx: DestinationTransaction) -> None:
        """
        Post one bank transaction.

        Raises:
            APIError: If the destination rejects or never acknowledges it
        """
        pass

    async def resolve_route(self, provider_name: str) -> str:
        """
        Find the id of the bank integration for a provider.

        Raises:
            RouteNotFoundError: If no integration matches ``provider_name``
        """
        for integration in await self.list_bank_integrations():
            if integration.provider_name == provider_name:
                return integration.id
        raise RouteNotFoundError(
            f"no bank integration found for provider: {provider_name}"
        )


class APIError(Exception):
    """Base exception for API client errors."""

    pass


class APIConnectionError(APIError):
    """Raised when connection to API fails or times out."""

    pass


class APIResponseError(APIError):
    """Raised when the API answers with a non-success status."""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class APIAuthenticationError(APIResponseError):
    """Raised when API authentication fails."""

    pass


class APIRateLimitError(APIResponseError):
    """Raised when API rate limit is exceeded."""

    pass


class APIValidationError(APIError):
    """Raised when API returns invalid data."""

    pass


class APIRequestError(APIError):
    """Raised when a request fails for a reason retrying cannot fix."""

    pass


class RouteNotFoundError(Exception):
    """Raised when the destination has no integration for the configured provider."""

    pass


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether a failed request may be retried.

    Connection failures, timeouts, rate limiting and 5xx answers are
    transient; any other 4xx is a terminal rejection.
    """
    if isinstance(exc, APIConnectionError):
        return True
    if isinstance(exc, APIRateLimitError):
        return True
    if isinstance(exc, APIResponseError):
        return exc.status_code >= 500
    return False
