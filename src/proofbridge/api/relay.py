"""Relay endpoints: receive proofs from the companion app and hand them to the client once."""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from functools import lru_cache
from typing import Any, Optional, Tuple
from urllib.parse import unquote

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from proofbridge.delivery.fragment import ERROR_KEY, PROOF_KEY
from proofbridge.observability import get_observability
from proofbridge.settings import Settings, get_settings
from proofbridge.store import ProofStore

router = APIRouter(tags=["relay"])
LOGGER = logging.getLogger(__name__)

_IDENTIFIER_PATTERN = re.compile(r'"identifier"\s*:\s*"(0x[a-fA-F0-9]+)"')
# Some companion app builds misspell the query parameter.
_SESSION_PARAMS = ("sessionId", "sessionld")


@lru_cache(maxsize=1)
def get_proof_store() -> ProofStore:
    """Dependency provider returning the process-wide proof store."""

    return ProofStore(ttl_seconds=get_settings().relay.proof_ttl_seconds)


def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def parse_callback_body(raw: str) -> Tuple[Any, Optional[str]]:
    """Turn a callback body into ``(proof, identifier)``.

    Accepts JSON, a URL-encoded body whose only key is the JSON proof, or
    arbitrary URL-encoded text. Text that cannot be parsed is kept whole under
    ``_rawProofString`` for the normalizer's deep search.
    """

    if not raw.strip():
        return {}, None
    ok, proof = _try_json(raw)
    if not ok:
        decoded = unquote(raw)
        for candidate in (decoded, decoded.rstrip("=")):
            ok, proof = _try_json(candidate)
            if ok:
                break
        if not ok:
            proof = {"_rawProofString": decoded}
    identifier = None
    first = proof[0] if isinstance(proof, list) and proof else proof
    if isinstance(first, dict) and isinstance(first.get("identifier"), str):
        identifier = first["identifier"]
    else:
        match = _IDENTIFIER_PATTERN.search(unquote(raw).replace('\\"', '"'))
        identifier = match.group(1) if match else None
    return proof, identifier


def _session_param(request: Request) -> Optional[str]:
    for name in _SESSION_PARAMS:
        value = request.query_params.get(name)
        if value:
            return value
    return None


@router.post("/callback")
async def receive_callback(request: Request, store: ProofStore = Depends(get_proof_store)):
    """Store an out-of-band proof; always answers 200 so the companion app never reports an error."""

    session_id = _session_param(request)
    try:
        raw = (await request.body()).decode("utf-8", errors="replace")
        proof, identifier = parse_callback_body(raw)
        key = session_id or identifier or f"proof_{int(time.time() * 1000)}"
        store.put(key, proof)
        get_observability(component="relay").emit_event(
            "relay.proof_received",
            session_id=key,
            identifier=identifier,
            body_chars=len(raw),
        )
        return {"success": True, "sessionId": key, "message": "Proof received and stored"}
    except Exception:
        LOGGER.exception("Callback processing failed for session %s", session_id)
        fallback = session_id or f"error_{int(time.time() * 1000)}"
        return {
            "success": True,
            "sessionId": fallback,
            "message": "Proof received",
            "warning": "Processing encountered issues but proof was received",
        }


@router.get("/callback")
def callback_landing(settings: Settings = Depends(get_settings)):
    """Send users who open the callback URL by hand back to the dashboard."""

    return RedirectResponse(f"{settings.relay.frontend_url}/dashboard", status_code=status.HTTP_302_FOUND)


@router.get("/proof/{session_id}")
def fetch_proof(session_id: str, store: ProofStore = Depends(get_proof_store)):
    """One-time fetch of a stored proof."""

    proof = store.pop(session_id)
    if proof is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "Proof not found or expired"},
        )
    return {"success": True, "proof": proof}


@router.get("/proofs/pending")
def list_pending(store: ProofStore = Depends(get_proof_store)):
    session_ids = store.pending_keys()
    return {"success": True, "sessionIds": session_ids, "count": len(session_ids)}


@router.post("/redirect")
async def redirect_with_proof(request: Request, settings: Settings = Depends(get_settings)):
    """Fallback for companion apps that post to the page URL: bounce the proof into a fragment."""

    frontend = settings.relay.frontend_url
    try:
        raw = (await request.body()).decode("utf-8")
        proof, _ = parse_callback_body(raw)
        encoded = base64.b64encode(json.dumps(proof, separators=(",", ":")).encode("utf-8")).decode("ascii")
        target = f"{frontend}/dashboard#{PROOF_KEY}={encoded}"
    except (UnicodeDecodeError, TypeError, ValueError) as exc:
        LOGGER.warning("Could not encode redirected proof: %s", exc)
        target = f"{frontend}/dashboard#{ERROR_KEY}=true"
    return RedirectResponse(target, status_code=status.HTTP_302_FOUND)


__all__ = ["get_proof_store", "parse_callback_body", "router"]
