"""Boundary parser that classifies raw proof envelopes into a few known shapes."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class ProofObject:
    """A single proof object."""

    payload: Dict[str, Any]

    @property
    def raw(self) -> Any:
        return self.payload


@dataclass(frozen=True)
class ProofBatch:
    """An array of proofs; the first object is the one that is submitted."""

    proofs: Tuple[Any, ...]

    @property
    def raw(self) -> Any:
        return list(self.proofs)


@dataclass(frozen=True)
class RelayNotice:
    """Plain text returned instead of a proof; the proof went to the callback relay."""

    text: str

    @property
    def raw(self) -> Any:
        return self.text


@dataclass(frozen=True)
class OpaqueProof:
    """Anything else, including text with an embedded, unparseable proof."""

    raw: Any


ProofShape = Union[ProofObject, ProofBatch, RelayNotice, OpaqueProof]


def parse_envelope(raw: Any) -> ProofShape:
    """Classify an untrusted envelope.

    JSON text is decoded once. Text that is not JSON and shows no sign of
    carrying a proof is a relay notice (the SDK's "message" response).
    """

    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, str):
        text = raw.strip()
        if text[:1] in ("{", "["):
            try:
                decoded = json.loads(text)
            except ValueError:
                return OpaqueProof(raw)
            if isinstance(decoded, (dict, list)):
                return parse_envelope(decoded)
        if "identifier" in text or "{" in text:
            return OpaqueProof(raw)
        return RelayNotice(raw)
    if isinstance(raw, dict):
        return ProofObject(raw)
    if isinstance(raw, (list, tuple)):
        return ProofBatch(tuple(raw))
    return OpaqueProof(raw)


def primary_proof(shape: ProofShape) -> Optional[Dict[str, Any]]:
    """Return the proof object that carries the claim, if there is one."""

    if isinstance(shape, ProofObject):
        return shape.payload
    if isinstance(shape, ProofBatch):
        for item in shape.proofs:
            if isinstance(item, dict):
                return item
    return None


def is_relay_notice(raw: Any) -> bool:
    return isinstance(parse_envelope(raw), RelayNotice)


__all__ = [
    "OpaqueProof",
    "ProofBatch",
    "ProofObject",
    "ProofShape",
    "RelayNotice",
    "is_relay_notice",
    "parse_envelope",
    "primary_proof",
]
