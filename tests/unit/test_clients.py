"""Tests for the relay and ledger HTTP clients."""

from __future__ import annotations

import httpx
import pytest

from proofbridge.clients import LedgerClient, RelayClient
from proofbridge.errors import TransientNetworkError
from proofbridge.settings import get_settings


def _relay(handler) -> RelayClient:
    settings = get_settings()
    transport = httpx.MockTransport(handler)
    return RelayClient(
        settings=settings,
        client=httpx.AsyncClient(transport=transport, base_url=settings.relay.base_url),
    )


@pytest.mark.anyio
async def test_relay_fetch_returns_proof(zomato_proof):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"success": True, "proof": zomato_proof})

    relay = _relay(handler)

    assert await relay.fetch_proof("user-1_zomato_1") == zomato_proof
    assert seen == ["/api/proof/user-1_zomato_1"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"success": False, "error": "Proof not found or expired"}),
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, json={"success": True, "proof": None}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_relay_non_success_is_not_there_yet(response):
    relay = _relay(lambda request: response)

    assert await relay.fetch_proof("s1") is None


@pytest.mark.anyio
async def test_relay_connection_error_is_not_there_yet():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert await _relay(handler).fetch_proof("s1") is None


@pytest.mark.anyio
async def test_ledger_posts_with_bearer_token():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"success": True})

    settings = get_settings()
    ledger = LedgerClient(
        settings=settings,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=settings.ledger.base_url),
    )

    response = await ledger.post_contribution({"providerId": "zomato"}, bearer_token="privy_u_e")

    assert response.status_code == 200
    assert captured == {"path": "/api/contribute", "auth": "Bearer privy_u_e"}


@pytest.mark.anyio
async def test_ledger_unreachable_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    ledger = LedgerClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ledger"))

    with pytest.raises(TransientNetworkError) as excinfo:
        await ledger.post_contribution({}, bearer_token="t")

    assert excinfo.value.retryable
