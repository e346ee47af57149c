"""In-memory verification session and its terminal outcome."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from proofbridge.delivery.channel import DeliveryChannel
from proofbridge.errors import ProofBridgeError
from proofbridge.normalization.models import NormalizedRecord
from proofbridge.submission.submitter import ContributionReceipt


class VerificationStatus(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    AWAITING_PROOF = "awaiting_proof"
    EXTRACTING = "extracting"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VerificationStatus.SUCCEEDED, VerificationStatus.FAILED)


@dataclass
class VerificationSession:
    """One user-initiated verification attempt.

    ``captured_proof`` holds whatever the diagnostics side-channel recovered
    and ``pending_error`` the SDK error parked while the page was hidden.
    """

    provider_id: str
    delivery_channel: DeliveryChannel
    started_at: float
    session_id: Optional[str] = None
    status: VerificationStatus = VerificationStatus.IDLE
    request_url: Optional[str] = None
    callback_url: Optional[str] = None
    is_loopback: bool = False
    captured_proof: Any = None
    pending_error: Optional[ProofBridgeError] = None
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class VerificationOutcome:
    """Result reported to the caller once a session reaches a terminal state."""

    status: VerificationStatus
    provider_id: Optional[str]
    delivery_channel: DeliveryChannel
    record: Optional[NormalizedRecord] = None
    proof_identifier: Optional[str] = None
    receipt: Optional[ContributionReceipt] = None
    error: Optional[ProofBridgeError] = None
    failure_reason: Optional[str] = None
    proof_source: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is VerificationStatus.SUCCEEDED

    @property
    def user_message(self) -> Optional[str]:
        return self.error.user_message if self.error else None


__all__ = ["VerificationOutcome", "VerificationSession", "VerificationStatus"]
