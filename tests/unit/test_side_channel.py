"""Tests for recovering proofs from attestation SDK diagnostics."""

from __future__ import annotations

import json
import logging

from proofbridge.recovery import ProofCaptureHandler, capture_sdk_proofs, find_proof


def test_captures_proof_array_argument(zomato_proof):
    with capture_sdk_proofs("reclaim.test.array") as handler:
        logging.getLogger("reclaim.test.array").debug("Proofs received: %s", [zomato_proof])

    assert handler.captured_proof == [zomato_proof]


def test_captures_proof_embedded_in_text(zomato_proof):
    logger = logging.getLogger("reclaim.test.text")
    with capture_sdk_proofs("reclaim.test.text") as handler:
        logger.info("status update")
        logger.debug("onSuccess payload => " + json.dumps([zomato_proof]) + " (done)")

    assert handler.captured_proof == [zomato_proof]


def test_keeps_first_match_only(proof_factory):
    first = proof_factory({"username": "a"}, identifier="0x1")
    second = proof_factory({"username": "b"}, identifier="0x2")
    logger = logging.getLogger("reclaim.test.first")
    with capture_sdk_proofs("reclaim.test.first") as handler:
        logger.debug("%s", first)
        logger.debug("%s", second)

    assert handler.captured_proof["identifier"] == "0x1"


def test_ignores_non_proof_records():
    logger = logging.getLogger("reclaim.test.noise")
    with capture_sdk_proofs("reclaim.test.noise") as handler:
        logger.debug("polling status %s", {"status": "PENDING"})
        logger.warning("identifier missing from publicData {broken")

    assert handler.captured_proof is None


def test_handler_is_detached_afterwards():
    logger = logging.getLogger("reclaim.test.detach")
    previous_level = logger.level
    with capture_sdk_proofs("reclaim.test.detach") as handler:
        assert handler in logger.handlers
        assert logger.isEnabledFor(logging.DEBUG)

    assert handler not in logger.handlers
    assert logger.level == previous_level


def test_reset_clears_capture(zomato_proof):
    handler = ProofCaptureHandler()
    handler.emit(logging.LogRecord("reclaim", logging.DEBUG, __file__, 1, "%s", (zomato_proof,), None))
    assert handler.captured_proof == zomato_proof

    handler.reset()

    assert handler.captured_proof is None


def test_find_proof_requires_identifier():
    assert find_proof({"identifier": "0x1"}) == {"identifier": "0x1"}
    assert find_proof([]) is None
    assert find_proof({"claimData": {}}) is None
    assert find_proof(None) is None
