"""Tests for delivery channel selection and negotiation."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

import pytest

from proofbridge.delivery import (
    DeliveryChannel,
    DeliveryPlan,
    is_publicly_reachable,
    negotiate_delivery,
    new_session_id,
    select_delivery,
)
from proofbridge.errors import CallbackUrlRejectedError


@pytest.mark.parametrize(
    "origin",
    [
        "http://localhost:5173",
        "http://app.localhost",
        "http://127.0.0.1:3000",
        "http://[::1]:8080",
        "http://192.168.1.20",
        "http://10.0.0.5",
        "http://169.254.10.1",
        "http://0.0.0.0:8000",
        "http://printer.local",
        "",
    ],
)
def test_loopback_and_private_origins_are_not_reachable(origin):
    assert not is_publicly_reachable(origin)


@pytest.mark.parametrize("origin", ["https://app.example.com", "https://8.8.8.8", "app.example.com"])
def test_public_origins_are_reachable(origin):
    assert is_publicly_reachable(origin)


def test_session_id_layout():
    session_id = new_session_id("user-1", "zomato")

    assert re.fullmatch(r"user-1_zomato_\d{13}_[0-9a-f]{12}", session_id)
    assert new_session_id(None, "github").startswith("anon_github_")
    assert new_session_id("u", "zomato") != new_session_id("u", "zomato")


def test_public_origin_selects_relay_polling():
    plan = select_delivery("https://app.example.com", "zomato", "user-1", "https://relay.example.com/api/")

    assert plan.channel is DeliveryChannel.RELAY_POLLING
    assert plan.uses_relay
    parts = urlsplit(plan.callback_url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://relay.example.com/api/callback"
    assert parse_qs(parts.query)["sessionId"] == [plan.session_id]


def test_loopback_origin_selects_direct():
    plan = select_delivery("http://localhost:5173", "zomato", "user-1", "https://relay.example.com")

    assert plan == DeliveryPlan(channel=DeliveryChannel.DIRECT)
    assert plan.session_id is None
    assert plan.callback_url is None


class _Request:
    """SDK request double; ``reject`` refuses the callback on set, ``reject_on_url`` when the URL is built."""

    def __init__(self, *, reject: bool = False, reject_on_url: bool = False) -> None:
        self.reject = reject
        self.reject_on_url = reject_on_url
        self.callback_url = None
        self.url_requests = 0

    def set_callback_url(self, url: str) -> None:
        if self.reject:
            raise CallbackUrlRejectedError(f"Invalid callback URL: {url}")
        self.callback_url = url

    async def get_request_url(self) -> str:
        self.url_requests += 1
        if self.reject_on_url and self.callback_url:
            raise CallbackUrlRejectedError(f"Invalid callback URL: {self.callback_url}")
        return "https://attest.example/verify/1"


class _Factory:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.created = []

    def __call__(self) -> _Request:
        request = _Request(**self.kwargs)
        self.created.append(request)
        return request


def _public_plan() -> DeliveryPlan:
    return select_delivery("https://app.example.com", "zomato", "user-1", "https://relay.example.com")


@pytest.mark.anyio
async def test_negotiate_applies_callback_url():
    factory = _Factory()
    plan = _public_plan()

    negotiated, request, url = await negotiate_delivery(factory, plan)

    assert negotiated == plan
    assert request is factory.created[0]
    assert request.callback_url == plan.callback_url
    assert url == "https://attest.example/verify/1"


@pytest.mark.anyio
async def test_rejected_callback_falls_back_to_direct():
    factory = _Factory(reject=True)

    negotiated, request, url = await negotiate_delivery(factory, _public_plan())

    assert negotiated.channel is DeliveryChannel.DIRECT
    assert negotiated.session_id is None
    assert negotiated.callback_url is None
    assert request.url_requests == 1
    assert len(factory.created) == 1
    assert url


@pytest.mark.anyio
async def test_callback_refused_by_request_url_retries_without_callback():
    factory = _Factory(reject_on_url=True)

    negotiated, request, url = await negotiate_delivery(factory, _public_plan())

    assert negotiated == DeliveryPlan(channel=DeliveryChannel.DIRECT)
    assert len(factory.created) == 2
    assert request is factory.created[1]
    assert request.callback_url is None
    assert url == "https://attest.example/verify/1"


@pytest.mark.anyio
async def test_request_url_failure_without_callback_propagates():
    def broken():
        request = _Request()

        async def fail():
            raise ValueError("template not found")

        request.get_request_url = fail
        return request

    with pytest.raises(ValueError):
        await negotiate_delivery(broken, DeliveryPlan(channel=DeliveryChannel.DIRECT))
