"""Tests for redirect fragment parsing."""

from __future__ import annotations

import base64
import json

from proofbridge.delivery import RedirectError, RedirectProof, encode_proof_fragment, parse_redirect_fragment, strip_fragment


def test_proof_fragment_round_trip(zomato_proof):
    fragment = "#" + encode_proof_fragment(zomato_proof)

    result = parse_redirect_fragment(fragment)

    assert result == RedirectProof(proof=zomato_proof)


def test_url_encoded_and_urlsafe_payloads():
    payload = json.dumps({"identifier": "0x1", "note": "??>>"}).encode()
    standard = base64.b64encode(payload).decode()
    urlsafe = base64.urlsafe_b64encode(payload).decode().rstrip("=")

    assert parse_redirect_fragment("#reclaim_proof=" + standard.replace("=", "%3D")).proof["identifier"] == "0x1"
    assert parse_redirect_fragment("reclaim_proof=" + urlsafe).proof["note"] == "??>>"


def test_error_fragment():
    assert parse_redirect_fragment("#reclaim_error=true") == RedirectError(reason="true")
    assert parse_redirect_fragment("#reclaim_error=") == RedirectError(reason="unknown")


def test_unrelated_or_broken_fragments():
    assert parse_redirect_fragment(None) is None
    assert parse_redirect_fragment("") is None
    assert parse_redirect_fragment("#section-2") is None
    assert parse_redirect_fragment("#reclaim_proof=%%%not-base64") is None
    assert parse_redirect_fragment("#reclaim_proof=" + base64.b64encode(b"not json").decode()) is None


def test_strip_fragment():
    assert strip_fragment("https://app.example.com/dashboard?tab=1#reclaim_proof=abc") == (
        "https://app.example.com/dashboard?tab=1"
    )
