"""Tests for the relay's in-memory proof store."""

from __future__ import annotations

from proofbridge.store import ProofStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_pop_is_one_time():
    store = ProofStore(ttl_seconds=300)
    store.put("session-1", {"identifier": "0x1"})

    assert store.pop("session-1") == {"identifier": "0x1"}
    assert store.pop("session-1") is None


def test_entries_expire_after_ttl():
    clock = FakeClock()
    store = ProofStore(ttl_seconds=300, clock=clock)
    store.put("old", {"identifier": "0x1"})
    clock.now += 200
    store.put("new", {"identifier": "0x2"})

    clock.now += 100

    assert store.pending_keys() == ["new"]
    assert store.pop("old") is None
    clock.now += 300
    assert store.purge_expired() == 1
    assert len(store) == 0


def test_put_replaces_existing_entry():
    store = ProofStore()
    store.put("session-1", "first")
    store.put("session-1", "second")

    assert store.pending_keys() == ["session-1"]
    assert store.pop("session-1") == "second"
