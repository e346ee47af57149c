"""Shared fixtures: cache resets and realistic proof envelopes."""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from proofbridge.api.relay import get_proof_store
from proofbridge.observability import reset_observability_cache
from proofbridge.providers.registry import get_registry
from proofbridge.settings import get_settings

ZOMATO_ORDERS: List[Dict[str, str]] = [
    {"items": "Paneer Tikka x1", "price": "250", "timestamp": "2024-01-05T12:00:00Z", "restaurant": "Spice Hub"},
    {"items": "Masala Dosa x2", "price": "180", "timestamp": "2024-02-11T09:30:00Z", "restaurant": "Dosa Corner"},
    {"items": "Veg Biryani x1", "price": "320", "timestamp": "2024-03-20T20:15:00Z", "restaurant": "Biryani House"},
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_caches():
    """Keep cached settings, registry and relay store from leaking between tests."""

    get_settings.cache_clear()
    get_registry.cache_clear()
    get_proof_store.cache_clear()
    reset_observability_cache()
    yield
    get_settings.cache_clear()
    get_registry.cache_clear()
    get_proof_store.cache_clear()
    reset_observability_cache()


def build_proof(
    extracted: Dict[str, Any],
    *,
    identifier: str = "0xabc123",
    provider_hint: str = "http",
    context_as_string: bool = True,
    public_data: Any = None,
) -> Dict[str, Any]:
    """Return a proof in the Attestation Service's documented shape."""

    context = {"extractedParameters": extracted, "providerHash": "0x01"}
    return {
        "identifier": identifier,
        "claimData": {
            "provider": provider_hint,
            "parameters": "{}",
            "owner": "0xowner",
            "timestampS": 1704067200,
            "context": json.dumps(context) if context_as_string else context,
        },
        "signatures": ["0xsig"],
        "witnesses": [],
        "publicData": public_data,
    }


@pytest.fixture
def proof_factory():
    return build_proof


@pytest.fixture
def zomato_orders() -> List[Dict[str, str]]:
    return [dict(order) for order in ZOMATO_ORDERS]


@pytest.fixture
def zomato_proof(zomato_orders) -> Dict[str, Any]:
    return build_proof({"orders": json.dumps(zomato_orders)}, identifier="0xabc123", provider_hint="zomato-orders")
