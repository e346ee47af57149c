"""Error taxonomy shared by the delivery, extraction and submission layers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ProofBridgeError(Exception):
    """Base exception for proofbridge.

    ``user_message`` is the calm, actionable text shown to the end user;
    ``message`` is the diagnostic text that ends up in logs.
    """

    code = "PROOFBRIDGE_ERROR"
    retryable = False
    user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if user_message is not None:
            self.user_message = user_message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a JSON-friendly dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "details": self.details,
        }


class TransientNetworkError(ProofBridgeError):
    """A collaborator could not be reached; the user may retry by re-initiating."""

    code = "TRANSIENT_NETWORK"
    retryable = True
    user_message = "Please check your internet connection and try again. Mobile networks can be slower."


class ProofTimeoutError(ProofBridgeError):
    """Relay polling was exhausted without a proof arriving."""

    code = "PROOF_TIMEOUT"
    retryable = True
    user_message = "Could not retrieve verification data yet. Refresh the page to check again."


class ProofMalformedError(ProofBridgeError):
    """The normalizer found no usable field for the provider."""

    code = "PROOF_MALFORMED"
    user_message = "We could not read any data from this verification. Please try again."


# Contract name used by callers of ``normalize``.
ExtractionFailed = ProofMalformedError


class UserCancelledError(ProofBridgeError):
    """The user abandoned verification."""

    code = "USER_CANCELLED"
    user_message = "Verification cancelled. You can try again when ready."


class LedgerRejectedError(ProofBridgeError):
    """The Ledger API explicitly refused the contribution."""

    code = "LEDGER_REJECTED"

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        # The server message is shown verbatim.
        super().__init__(message, user_message=message, details=details)
        self.status_code = status_code


class ProofPendingNotice(ProofBridgeError):
    """The SDK stopped waiting locally; the proof may still land on the relay."""

    code = "PROOF_PENDING"
    retryable = True
    user_message = "Verification is still finishing. Refresh the page in a moment to see your result."


class UnknownProviderError(ProofBridgeError, KeyError):
    """A provider id that is not in the registry."""

    code = "UNKNOWN_PROVIDER"
    user_message = "This provider is not supported."

    def __str__(self) -> str:
        return ProofBridgeError.__str__(self)


class CallbackUrlRejectedError(ProofBridgeError):
    """The Attestation SDK refused the configured callback URL."""

    code = "CALLBACK_URL_REJECTED"


class VerificationInProgressError(ProofBridgeError):
    """A second verification was started while one is still in flight."""

    code = "VERIFICATION_IN_PROGRESS"
    user_message = "A verification is already in progress."


class AttestationSdkError(ProofBridgeError):
    """Error reported by the Attestation SDK through its error callback.

    ``payload`` keeps whatever proof-like data the SDK attached to the error.
    """

    code = "ATTESTATION_SDK_ERROR"
    user_message = "Verification failed. Please try again or contact support."

    def __init__(self, message: str, *, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


__all__ = [
    "AttestationSdkError",
    "CallbackUrlRejectedError",
    "ExtractionFailed",
    "LedgerRejectedError",
    "ProofBridgeError",
    "ProofMalformedError",
    "ProofPendingNotice",
    "ProofTimeoutError",
    "TransientNetworkError",
    "UnknownProviderError",
    "UserCancelledError",
    "VerificationInProgressError",
]
