"""Tests for the deferred-failure gate and SDK error classification."""

from __future__ import annotations

import pytest

from proofbridge.errors import (
    AttestationSdkError,
    ProofPendingNotice,
    TransientNetworkError,
    UserCancelledError,
)
from proofbridge.session import DeferredFailurePolicy, FailureGate, classify_sdk_error


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _gate(clock: FakeClock, *, visible: bool = False) -> FailureGate:
    return FailureGate(DeferredFailurePolicy(grace_seconds=120.0), started_at=0.0, clock=clock, page_visible=visible)


def test_hidden_error_is_parked_then_surfaced_on_visibility():
    clock = FakeClock()
    gate = _gate(clock)
    error = AttestationSdkError("Proof generation failed")

    clock.now = 10.0
    assert gate.offer(error) is None
    assert gate.parked is error

    clock.now = 15.0
    assert gate.on_visibility_change(True) is error
    assert gate.parked is None


def test_hidden_error_surfaces_when_grace_expires():
    clock = FakeClock()
    gate = _gate(clock)
    error = AttestationSdkError("Proof generation failed")

    clock.now = 10.0
    assert gate.offer(error) is None
    assert gate.seconds_until_release() == pytest.approx(110.0)

    clock.now = 119.0
    assert gate.on_tick() is None

    clock.now = 120.0
    assert gate.on_tick() is error


def test_going_hidden_again_does_not_release():
    clock = FakeClock()
    gate = _gate(clock)
    error = AttestationSdkError("failed")
    clock.now = 5.0
    gate.offer(error)

    assert gate.on_visibility_change(False) is None
    assert gate.parked is error


def test_visible_page_surfaces_immediately():
    clock = FakeClock(now=10.0)
    gate = _gate(clock, visible=True)
    error = AttestationSdkError("failed")

    assert gate.offer(error) is error
    assert gate.seconds_until_release() is None


def test_error_after_grace_window_is_not_deferred():
    clock = FakeClock(now=125.0)
    gate = _gate(clock)
    error = AttestationSdkError("failed")

    assert gate.offer(error) is error


def test_proof_discards_parked_error():
    clock = FakeClock(now=10.0)
    gate = _gate(clock)
    gate.offer(AttestationSdkError("failed"))

    gate.on_proof()
    clock.now = 130.0

    assert gate.on_tick() is None
    assert gate.on_visibility_change(True) is None


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Request timeout while generating proof", TransientNetworkError),
        ("Network error", TransientNetworkError),
        ("Failed to fetch", TransientNetworkError),
        ("Verification cancelled", UserCancelledError),
        ("User rejected the request", UserCancelledError),
        ("Interval ended without receiving proof", ProofPendingNotice),
    ],
)
def test_classification(message, expected):
    assert isinstance(classify_sdk_error(AttestationSdkError(message)), expected)


def test_unclassified_errors_go_to_recovery():
    assert classify_sdk_error(AttestationSdkError("Proof generation failed")) is None


def test_held_error_waits_for_visibility_past_grace():
    clock = FakeClock()
    gate = _gate(clock)
    error = UserCancelledError("User cancelled")

    gate.hold_until_visible(error)
    assert gate.parked is error
    assert gate.seconds_until_release() is None

    clock.now = 500.0
    assert gate.on_tick() is None
    assert gate.parked is error

    assert gate.on_visibility_change(True) is error
    assert gate.parked is None


def test_proof_clears_held_error():
    gate = _gate(FakeClock())
    gate.hold_until_visible(UserCancelledError("User cancelled"))

    gate.on_proof()

    assert gate.parked is None
    assert gate.on_visibility_change(True) is None
