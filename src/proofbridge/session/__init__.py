"""Verification session state machine and deferred-failure policy."""

from proofbridge.session.models import VerificationOutcome, VerificationSession, VerificationStatus
from proofbridge.session.orchestrator import VerificationOrchestrator, proof_from_error
from proofbridge.session.policy import DeferredFailurePolicy, FailureGate, classify_sdk_error

__all__ = [
    "DeferredFailurePolicy",
    "FailureGate",
    "VerificationOrchestrator",
    "VerificationOutcome",
    "VerificationSession",
    "VerificationStatus",
    "classify_sdk_error",
    "proof_from_error",
]
