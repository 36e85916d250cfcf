"""
Retrying JSON transport shared by the API clients.

One transport is built per external API and injected into its
client, so the retry policy and connection pool are explicit
dependencies rather than process-wide state.
"""

from typing import Any, Dict, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from banksync.sync.clients.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIRateLimitError,
    APIRequestError,
    APIResponseError,
    APIValidationError,
    is_retryable,
)
from banksync.sync.config import RetryConfig
from banksync.sync.retry import retry_with_backoff

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

MAX_ERROR_BODY = 500


class HTTPTransport:
    """JSON-over-HTTP transport with bounded retries for transient failures."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the transport.

        Args:
            base_url: Prefix for every request path
            headers: Headers sent with every request (authentication)
            timeout: Per-request timeout in seconds
            retry: Retry policy (defaults to RetryConfig())
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.base_url = base_url
        self.retry = retry or RetryConfig()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            APIConnectionError: Network failure or timeout after all retries
            APIRequestError: Request failed for a non-transient reason
            APIResponseError: Non-success status (subclassed for 401/403/429)
            APIValidationError: Response body is not valid JSON
        """

        async def send() -> Any:
            return await self._send(method, path, params, json)

        return await retry_with_backoff(
            send,
            self.retry,
            operation_name=f"{method} {path}",
            should_retry=is_retryable,
        )

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        json: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            raise APIConnectionError(
                f"error submitting request: {method} {path}: {e!r}"
            ) from e
        except httpx.RequestError as e:
            # Decoding failures and redirect loops repeat on every attempt
            raise APIRequestError(
                f"error submitting request: {method} {path}: {e!r}"
            ) from e

        if not response.is_success:
            raise _error_for(response)

        try:
            body = response.json()
        except ValueError as e:
            raise APIValidationError(
                f"error parsing JSON response: {method} {response.url}: "
                f"{response.text[:MAX_ERROR_BODY]}"
            ) from e

        logger.debug(
            "api.response",
            method=method,
            url=str(response.url),
            status=response.status_code,
            body=response.text[:MAX_ERROR_BODY],
        )
        return body

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HTTPTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _error_for(response: httpx.Response) -> APIResponseError:
    body = response.text[:MAX_ERROR_BODY]
    message = (
        f"error submitting request: {response.request.method} {response.url}: "
        f"{response.status_code} {body}"
    )
    if response.status_code in (401, 403):
        return APIAuthenticationError(message, response.status_code, body)
    if response.status_code == 429:
        return APIRateLimitError(message, response.status_code, body)
    return APIResponseError(message, response.status_code, body)


def parse_response(model: Type[M], body: Any, what: str) -> M:
    """Validate a decoded response body against a response model."""
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise APIValidationError(f"unexpected {what} response: {e}") from e
