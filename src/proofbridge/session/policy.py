"""Deferred-failure policy and SDK error classification.

On mobile the user leaves the page to finish verification in the companion
app. SDK errors raised while the page is hidden are frequently spurious, so
they are parked until the page is visible again or the grace window ends.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from proofbridge.errors import (
    AttestationSdkError,
    ProofBridgeError,
    ProofPendingNotice,
    TransientNetworkError,
    UserCancelledError,
)

_NETWORK_MARKERS = ("timeout", "network", "fetch")
_CANCEL_MARKERS = ("cancelled", "canceled", "user")
_PENDING_MARKER = "interval ended without receiving proof"


@dataclass(frozen=True)
class DeferredFailurePolicy:
    grace_seconds: float = 120.0

    def should_defer(self, *, elapsed: float, page_visible: bool) -> bool:
        return not page_visible and elapsed < self.grace_seconds


class FailureGate:
    """Holds at most one parked error for a session.

    Every method returns the error to surface now, or ``None`` while the
    outcome is still ambiguous. A parked error is released when the page
    becomes visible or the grace window ends; an error held with
    :meth:`hold_until_visible` waits for visibility only.
    """

    def __init__(
        self,
        policy: DeferredFailurePolicy,
        started_at: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        page_visible: bool = True,
    ) -> None:
        self.policy = policy
        self.started_at = started_at
        self.page_visible = page_visible
        self._clock = clock
        self._parked: Optional[ProofBridgeError] = None
        self._held: Optional[ProofBridgeError] = None

    @property
    def parked(self) -> Optional[ProofBridgeError]:
        return self._parked or self._held

    @property
    def deadline(self) -> float:
        return self.started_at + self.policy.grace_seconds

    def offer(self, error: ProofBridgeError) -> Optional[ProofBridgeError]:
        elapsed = self._clock() - self.started_at
        if self.policy.should_defer(elapsed=elapsed, page_visible=self.page_visible):
            self._parked = error
            return None
        self._parked = None
        return error

    def hold_until_visible(self, error: ProofBridgeError) -> None:
        self._held = error

    def on_visibility_change(self, visible: bool) -> Optional[ProofBridgeError]:
        self.page_visible = visible
        if visible:
            return self._release()
        return None

    def on_tick(self) -> Optional[ProofBridgeError]:
        if self._parked is not None and self._clock() >= self.deadline:
            error, self._parked = self._parked, None
            return error
        return None

    def on_proof(self) -> None:
        """A proof arrived; whatever was parked no longer matters."""

        self._parked = None
        self._held = None

    def seconds_until_release(self) -> Optional[float]:
        if self._parked is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def _release(self) -> Optional[ProofBridgeError]:
        error = self._parked or self._held
        self._parked = self._held = None
        return error


def classify_sdk_error(error: BaseException) -> Optional[ProofBridgeError]:
    """Map an SDK error to a user-facing class, or ``None`` when recovery should be tried."""

    if isinstance(error, (TransientNetworkError, UserCancelledError, ProofPendingNotice)):
        return error
    text = str(getattr(error, "message", None) or error)
    message = text.lower()
    if any(marker in message for marker in _NETWORK_MARKERS):
        return TransientNetworkError(text, details={"sdk_error": text})
    if any(marker in message for marker in _CANCEL_MARKERS):
        return UserCancelledError(text)
    if _PENDING_MARKER in message:
        return ProofPendingNotice(text)
    return None


def as_sdk_error(error: BaseException) -> ProofBridgeError:
    if isinstance(error, ProofBridgeError):
        return error
    return AttestationSdkError(str(error) or error.__class__.__name__)


__all__ = ["DeferredFailurePolicy", "FailureGate", "as_sdk_error", "classify_sdk_error"]
