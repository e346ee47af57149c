"""Tests for the callback relay endpoints."""

from __future__ import annotations

import base64
import json
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from proofbridge.api.app import create_app
from proofbridge.api.relay import get_proof_store, parse_callback_body
from proofbridge.settings import get_settings
from proofbridge.store import ProofStore


@pytest.fixture
def store() -> ProofStore:
    return ProofStore(ttl_seconds=300)


@pytest.fixture
def client(store):
    app = create_app()
    app.dependency_overrides[get_proof_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client


def test_callback_then_one_time_fetch(client, zomato_proof):
    response = client.post("/callback", params={"sessionId": "user-1_zomato_1"}, json=[zomato_proof])

    assert response.status_code == 200
    assert response.json()["sessionId"] == "user-1_zomato_1"

    fetched = client.get("/proof/user-1_zomato_1")
    assert fetched.status_code == 200
    assert fetched.json() == {"success": True, "proof": [zomato_proof]}

    again = client.get("/proof/user-1_zomato_1")
    assert again.status_code == 404
    assert again.json()["success"] is False


def test_form_encoded_proof_key_is_parsed(client, store, zomato_proof):
    body = quote(json.dumps(zomato_proof), safe="") + "="

    response = client.post(
        "/callback?sessionld=s-typo",
        content=body,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert response.status_code == 200
    assert store.pop("s-typo") == zomato_proof


def test_unparseable_body_is_kept_whole_and_keyed_by_identifier(client, store):
    raw = '{"identifier":"0xabc123","claimData":{"context":"{\\"extractedParameters\\"'

    response = client.post("/callback", content=quote(raw), headers={"Content-Type": "text/plain"})

    assert response.status_code == 200
    assert response.json()["sessionId"] == "0xabc123"
    assert store.pop("0xabc123") == {"_rawProofString": raw}


def test_empty_body_still_answers_200(client):
    response = client.post("/callback")

    assert response.status_code == 200
    assert response.json()["sessionId"].startswith("proof_")


def test_pending_lists_session_ids(client, store):
    store.put("a", {"identifier": "0x1"})
    store.put("b", {"identifier": "0x2"})

    body = client.get("/proofs/pending").json()

    assert body == {"success": True, "sessionIds": ["a", "b"], "count": 2}


def test_redirect_encodes_proof_into_fragment(client, zomato_proof):
    response = client.post("/redirect", json=zomato_proof, follow_redirects=False)

    assert response.status_code == 302
    location = response.headers["location"]
    prefix = f"{get_settings().relay.frontend_url}/dashboard#reclaim_proof="
    assert location.startswith(prefix)
    assert json.loads(base64.b64decode(location[len(prefix):])) == zomato_proof


def test_redirect_with_undecodable_body_reports_error(client):
    response = client.post("/redirect", content=b"\xff\xfe\xfd", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].endswith("/dashboard#reclaim_error=true")


def test_callback_get_redirects_to_dashboard(client):
    response = client.get("/callback", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == f"{get_settings().relay.frontend_url}/dashboard"


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["version"]


def test_parse_callback_body_variants(zomato_proof):
    assert parse_callback_body("") == ({}, None)
    assert parse_callback_body(json.dumps(zomato_proof)) == (zomato_proof, "0xabc123")
    assert parse_callback_body(json.dumps([zomato_proof]))[1] == "0xabc123"
    proof, identifier = parse_callback_body("garbage without identifier")
    assert proof == {"_rawProofString": "garbage without identifier"}
    assert identifier is None
