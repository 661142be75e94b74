"""Aggregation provider HTTP client: bank link handshake and raw account data"""

import asyncio
import logging
from typing import Any, Dict, List

import httpx

from buho_gateway.config import settings
from buho_gateway.domain.exceptions import (
    InvalidToken,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
)
from buho_gateway.domain.models import AccessCredential, DateRange, LinkToken, User
from buho_gateway.infrastructure.observability.metrics import (
    provider_latency_histogram,
    provider_retry_counter,
)

logger = logging.getLogger(__name__)

# Provider error codes that mean the credential itself is no longer usable
PERMANENT_ITEM_ERRORS = {
    "ITEM_LOGIN_REQUIRED",
    "ACCESS_NOT_GRANTED",
    "INVALID_ACCESS_TOKEN",
    "ITEM_NOT_FOUND",
    "USER_PERMISSION_REVOKED",
}

INVALID_TOKEN_ERRORS = {"INVALID_PUBLIC_TOKEN", "PUBLIC_TOKEN_EXPIRED"}


def _provider_error(response: httpx.Response) -> ProviderError:
    """Translate an error response into a domain exception"""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    status = response.status_code
    code = body.get("error_code") or f"HTTP_{status}"
    message = body.get("error_message") or f"Provider error: {status}"

    if code in INVALID_TOKEN_ERRORS:
        return InvalidToken(message, code=code)
    if status == 429 or code == "RATE_LIMIT_EXCEEDED":
        return ProviderError(message, code=code, retryable=True)
    if status >= 500:
        return ProviderUnavailable(message, code=code)
    return ProviderError(message, code=code, retryable=False)


class AggregatorClient:
    """Client for the external bank aggregation API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.aggregator_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.provider_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.provider_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _post(self, client: httpx.AsyncClient, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Single provider call.

        Raises:
            ProviderError: timeout (retryable), HTTP error, or invalid response
            ProviderUnavailable: provider cannot be reached
        """
        body = {
            "client_id": settings.aggregator_client_id,
            "secret": settings.aggregator_secret,
            **payload,
        }
        try:
            with provider_latency_histogram.labels(operation=operation).time():
                response = await client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Provider timeout after {self.timeout}s", code="TIMEOUT", retryable=True
            ) from e
        except httpx.RequestError as e:
            raise ProviderUnavailable(f"Provider unreachable: {e}") from e

        if response.is_error:
            raise _provider_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Invalid JSON from provider", code="INVALID_RESPONSE") from e
        if not isinstance(data, dict):
            raise ProviderError("Unexpected response shape from provider", code="INVALID_RESPONSE")
        return data

    async def _post_with_retry(
        self, client: httpx.AsyncClient, operation: str, path: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Read call with retry on transient failures.

        Retry strategy:
        - Exponential backoff: base * 2^(attempt-1), e.g. 0.5s, 1s, 2s
        - Only retryable ProviderErrors are retried
        - The last failure is raised unchanged
        """
        attempt = 0
        while True:
            try:
                return await self._post(client, operation, path, payload)
            except ProviderError as e:
                attempt += 1
                if not e.retryable or attempt > self.max_retries:
                    raise

                provider_retry_counter.labels(operation=operation).inc()
                backoff = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    f"Retrying {operation} after {e.code}",
                    extra={"attempt": attempt, "backoff_seconds": backoff},
                )
                await asyncio.sleep(backoff)

    async def create_link_token(self, user: User) -> LinkToken:
        """
        Request a short-lived link token scoped to the user.

        Raises:
            ProviderUnavailable: provider cannot be reached
            ProviderRejected: provider refused to link this user
        """
        payload = {
            "client_name": settings.aggregator_client_name,
            "language": settings.aggregator_language,
            "country_codes": settings.aggregator_country_codes,
            "products": ["transactions"],
            "user": {"client_user_id": user.id, "email_address": user.email},
        }
        async with self._client() as client:
            try:
                data = await self._post(client, "link_token_create", "/link/token/create", payload)
            except ProviderUnavailable:
                raise
            except ProviderError as e:
                if e.retryable:
                    raise ProviderUnavailable(str(e), code=e.code) from e
                raise ProviderRejected(str(e), code=e.code) from e

        try:
            return LinkToken(link_token=data["link_token"], expiration=str(data.get("expiration", "")))
        except KeyError as e:
            raise ProviderError(f"Invalid link token response: missing {e}", code="INVALID_RESPONSE") from e

    async def exchange_public_token(self, public_token: str) -> AccessCredential:
        """
        Complete the link handshake.

        Never retried: a consumed token must be reported, not re-sent.

        Raises:
            InvalidToken: token expired or already exchanged
        """
        async with self._client() as client:
            data = await self._post(
                client, "public_token_exchange", "/item/public_token/exchange", {"public_token": public_token}
            )

        try:
            return AccessCredential(access_token=data["access_token"], item_id=data["item_id"])
        except KeyError as e:
            raise ProviderError(f"Invalid exchange response: missing {e}", code="INVALID_RESPONSE") from e

    async def fetch_raw_accounts(self, credential: AccessCredential) -> List[Dict[str, Any]]:
        """Fetch raw account records for one linked item"""
        async with self._client() as client:
            data = await self._post_with_retry(
                client, "accounts_get", "/accounts/get", {"access_token": credential.access_token}
            )

        accounts = data.get("accounts", [])
        if not isinstance(accounts, list):
            raise ProviderError("Unexpected accounts payload", code="INVALID_RESPONSE")
        return accounts

    async def fetch_raw_transactions(
        self, credential: AccessCredential, date_range: DateRange
    ) -> List[Dict[str, Any]]:
        """
        Fetch every raw transaction in the date range for one linked item.

        Follows provider pagination (count/offset) until total_transactions
        records have been read.
        """
        transactions: List[Dict[str, Any]] = []
        async with self._client() as client:
            while True:
                data = await self._post_with_retry(
                    client,
                    "transactions_get",
                    "/transactions/get",
                    {
                        "access_token": credential.access_token,
                        "start_date": date_range.start.isoformat(),
                        "end_date": date_range.end.isoformat(),
                        "options": {
                            "count": settings.transactions_fetch_batch,
                            "offset": len(transactions),
                        },
                    },
                )
                batch = data.get("transactions", [])
                if not isinstance(batch, list):
                    raise ProviderError("Unexpected transactions payload", code="INVALID_RESPONSE")

                total = data.get("total_transactions", len(transactions) + len(batch))
                if not isinstance(total, int) or isinstance(total, bool):
                    raise ProviderError("Unexpected transactions payload", code="INVALID_RESPONSE")

                transactions.extend(batch)
                if not batch or len(transactions) >= total:
                    return transactions
