"""In-memory, time-limited storage for proofs waiting to be fetched by the client."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class StoredProof:
    proof: Any
    stored_at: float


class ProofStore:
    """Thread-safe map of session id to proof with a fixed time-to-live.

    Entries are removed on first fetch or once they are older than
    ``ttl_seconds``; expiry is applied lazily on every access.
    """

    def __init__(self, ttl_seconds: float = 300.0, *, clock: Callable[[], float] | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, StoredProof] = {}
        self._lock = threading.Lock()

    def put(self, key: str, proof: Any) -> None:
        with self._lock:
            self._purge_locked()
            self._entries[key] = StoredProof(proof=proof, stored_at=self._clock())

    def pop(self, key: str) -> Optional[Any]:
        """Return and delete the proof stored under ``key``."""

        with self._lock:
            self._purge_locked()
            entry = self._entries.pop(key, None)
        return entry.proof if entry else None

    def pending_keys(self) -> List[str]:
        with self._lock:
            self._purge_locked()
            return list(self._entries)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def __len__(self) -> int:
        return len(self.pending_keys())

    def _purge_locked(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        expired = [key for key, entry in self._entries.items() if entry.stored_at <= cutoff]
        for key in expired:
            del self._entries[key]
        return len(expired)


__all__ = ["ProofStore", "StoredProof"]
