"""Redirect fragments written by the relay when the companion app navigates the page."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Optional, Union
from urllib.parse import unquote, urlsplit, urlunsplit

PROOF_KEY = "reclaim_proof"
ERROR_KEY = "reclaim_error"


@dataclass(frozen=True)
class RedirectProof:
    proof: Any


@dataclass(frozen=True)
class RedirectError:
    reason: str


RedirectResult = Union[RedirectProof, RedirectError]


def _decode_base64(value: str) -> bytes:
    cleaned = unquote(value).strip().replace(" ", "+")
    cleaned += "=" * (-len(cleaned) % 4)
    if "-" in cleaned or "_" in cleaned:
        return base64.urlsafe_b64decode(cleaned)
    return base64.b64decode(cleaned, validate=True)


def encode_proof_fragment(proof: Any) -> str:
    """Return ``reclaim_proof=<base64 JSON>`` for ``proof``."""

    payload = json.dumps(proof, separators=(",", ":")).encode("utf-8")
    return f"{PROOF_KEY}={base64.b64encode(payload).decode('ascii')}"


def parse_redirect_fragment(fragment: Optional[str]) -> Optional[RedirectResult]:
    """Decode a URL fragment.

    ``reclaim_proof=<base64>`` yields a :class:`RedirectProof`,
    ``reclaim_error=<reason>`` a :class:`RedirectError`; anything else,
    including an undecodable payload, yields ``None``.
    """

    if not fragment:
        return None
    text = fragment.lstrip("#")
    for part in text.split("&"):
        key, _, value = part.partition("=")
        if key == PROOF_KEY and value:
            try:
                decoded = _decode_base64(value)
                return RedirectProof(proof=json.loads(decoded.decode("utf-8")))
            except (binascii.Error, ValueError):
                return None
        if key == ERROR_KEY:
            return RedirectError(reason=unquote(value) or "unknown")
    return None


def strip_fragment(url: str) -> str:
    """Drop the fragment so a redirect payload is consumed exactly once."""

    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


__all__ = [
    "ERROR_KEY",
    "PROOF_KEY",
    "RedirectError",
    "RedirectProof",
    "RedirectResult",
    "encode_proof_fragment",
    "parse_redirect_fragment",
    "strip_fragment",
]
