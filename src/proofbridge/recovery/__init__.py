from proofbridge.recovery.side_channel import (
    ProofCaptureHandler,
    capture_sdk_proofs,
    find_proof,
    looks_like_proof,
)

__all__ = ["ProofCaptureHandler", "capture_sdk_proofs", "find_proof", "looks_like_proof"]
