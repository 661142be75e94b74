"""Integration tests for the aggregation provider client over a mocked transport"""

import json
import httpx
import pytest
from datetime import date
from buho_gateway.domain.exceptions import (
    InvalidToken,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
)
from buho_gateway.domain.models import AccessCredential, DateRange, User
from buho_gateway.infrastructure.clients.aggregator import AggregatorClient

CREDENTIAL = AccessCredential(access_token="access-sandbox-item_1", item_id="item_1")
WINDOW = DateRange(start=date(2026, 9, 1), end=date(2026, 9, 30))


def _client(handler) -> AggregatorClient:
    return AggregatorClient(
        base_url="http://aggregator.test",
        timeout=1.0,
        max_retries=2,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )


def _error(status: int, code: str) -> httpx.Response:
    return httpx.Response(status, json={"error_type": "ITEM_ERROR", "error_code": code, "error_message": code.lower()})


async def test_fetch_raw_accounts_sends_credentials():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"accounts": [{"account_id": "acc_1"}]})

    accounts = await _client(handler).fetch_raw_accounts(CREDENTIAL)

    assert accounts == [{"account_id": "acc_1"}]
    assert seen["path"] == "/accounts/get"
    assert seen["body"]["access_token"] == "access-sandbox-item_1"
    assert "client_id" in seen["body"] and "secret" in seen["body"]


async def test_fetch_raw_accounts_retries_transient_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return _error(503, "INSTITUTION_DOWN")
        return httpx.Response(200, json={"accounts": []})

    assert await _client(handler).fetch_raw_accounts(CREDENTIAL) == []
    assert len(calls) == 3


async def test_fetch_raw_accounts_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _error(429, "RATE_LIMIT_EXCEEDED")

    with pytest.raises(ProviderError) as exc_info:
        await _client(handler).fetch_raw_accounts(CREDENTIAL)

    assert exc_info.value.retryable is True
    assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"
    assert len(calls) == 3  # first try + 2 retries


async def test_timeout_is_retryable_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderError) as exc_info:
        await _client(handler).fetch_raw_accounts(CREDENTIAL)

    assert exc_info.value.code == "TIMEOUT"
    assert exc_info.value.retryable is True


async def test_connection_error_is_provider_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderUnavailable):
        await _client(handler).fetch_raw_accounts(CREDENTIAL)


async def test_revoked_credential_is_permanent_and_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _error(400, "ITEM_LOGIN_REQUIRED")

    with pytest.raises(ProviderError) as exc_info:
        await _client(handler).fetch_raw_accounts(CREDENTIAL)

    assert exc_info.value.retryable is False
    assert exc_info.value.code == "ITEM_LOGIN_REQUIRED"
    assert len(calls) == 1


async def test_invalid_json_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(ProviderError) as exc_info:
        await _client(handler).fetch_raw_accounts(CREDENTIAL)

    assert exc_info.value.code == "INVALID_RESPONSE"


async def test_fetch_raw_transactions_follows_pagination():
    records = [{"transaction_id": f"tx_{i}"} for i in range(5)]
    offsets = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["start_date"] == "2026-09-01"
        assert body["end_date"] == "2026-09-30"
        offset = body["options"]["offset"]
        offsets.append(offset)
        return httpx.Response(200, json={"transactions": records[offset:offset + 2], "total_transactions": 5})

    transactions = await _client(handler).fetch_raw_transactions(CREDENTIAL, WINDOW)

    assert transactions == records
    assert offsets == [0, 2, 4]


async def test_fetch_raw_transactions_stops_on_empty_batch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"transactions": [], "total_transactions": 10})

    assert await _client(handler).fetch_raw_transactions(CREDENTIAL, WINDOW) == []


@pytest.mark.parametrize("total", [None, "5", True])
async def test_fetch_raw_transactions_rejects_bad_total(total):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"transactions": [{"transaction_id": "tx_1"}], "total_transactions": total})

    with pytest.raises(ProviderError) as exc_info:
        await _client(handler).fetch_raw_transactions(CREDENTIAL, WINDOW)

    assert exc_info.value.code == "INVALID_RESPONSE"


async def test_create_link_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"link_token": "link-sandbox-1", "expiration": "2030-01-01T00:00:00Z"})

    user = User(id="user_santi", name="Santi", email="santi@example.com")
    token = await _client(handler).create_link_token(user)

    assert token.link_token == "link-sandbox-1"
    assert seen["body"]["user"]["client_user_id"] == "user_santi"
    assert seen["body"]["products"] == ["transactions"]


async def test_create_link_token_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return _error(400, "INVALID_USER")

    with pytest.raises(ProviderRejected):
        await _client(handler).create_link_token(User(id="blocked", name="B", email="b@example.com"))


async def test_create_link_token_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return _error(500, "INTERNAL_SERVER_ERROR")

    with pytest.raises(ProviderUnavailable):
        await _client(handler).create_link_token(User(id="u", name="U", email="u@example.com"))


async def test_exchange_public_token():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["public_token"] == "public-sandbox-item_1"
        return httpx.Response(200, json={"access_token": "access-sandbox-item_1", "item_id": "item_1"})

    credential = await _client(handler).exchange_public_token("public-sandbox-item_1")

    assert credential == CREDENTIAL


async def test_exchange_consumed_token_is_invalid_and_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _error(400, "INVALID_PUBLIC_TOKEN")

    with pytest.raises(InvalidToken):
        await _client(handler).exchange_public_token("public-sandbox-item_1")

    assert len(calls) == 1


async def test_exchange_transient_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _error(503, "INSTITUTION_DOWN")

    with pytest.raises(ProviderUnavailable):
        await _client(handler).exchange_public_token("public-sandbox-item_1")

    assert len(calls) == 1
