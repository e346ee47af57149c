"""Proof envelope parsing and provider-aware normalization."""

from proofbridge.normalization.envelope import (
    OpaqueProof,
    ProofBatch,
    ProofObject,
    ProofShape,
    RelayNotice,
    is_relay_notice,
    parse_envelope,
    primary_proof,
)
from proofbridge.normalization.models import NormalizedRecord
from proofbridge.normalization.normalizer import MAX_DEPTH, infer_provider, normalize, proof_identifier

__all__ = [
    "MAX_DEPTH",
    "NormalizedRecord",
    "OpaqueProof",
    "ProofBatch",
    "ProofObject",
    "ProofShape",
    "RelayNotice",
    "infer_provider",
    "is_relay_notice",
    "normalize",
    "parse_envelope",
    "primary_proof",
    "proof_identifier",
]
