"""Recover proofs from the attestation SDK's own diagnostic logging.

The SDK sometimes logs a finished proof and then fails to hand it to its
success callback. A handler on the SDK logger keeps the first proof-looking
value it sees for the current ``awaiting_proof`` phase.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

# Candidate starts of a serialized proof, e.g. "Proofs received: [{...}]".
_JSON_START = re.compile(r"[\[{]")
_DECODER = json.JSONDecoder()


def looks_like_proof(value: Any) -> bool:
    """Return True for a proof object, or a non-empty array whose first item is one."""

    if isinstance(value, list):
        return bool(value) and isinstance(value[0], dict) and "identifier" in value[0]
    return isinstance(value, dict) and "identifier" in value


def _from_text(text: str) -> Optional[Any]:
    if "identifier" not in text or "publicData" not in text:
        return None
    for start in _JSON_START.finditer(text):
        try:
            parsed, _ = _DECODER.raw_decode(text, start.start())
        except ValueError:
            continue
        if looks_like_proof(parsed):
            return parsed
    return None


def find_proof(value: Any) -> Optional[Any]:
    """Return a proof carried by a log argument, or ``None``."""

    if looks_like_proof(value):
        return value
    if isinstance(value, str):
        return _from_text(value)
    return None


class ProofCaptureHandler(logging.Handler):
    """Logging handler that remembers the first proof seen in SDK log records."""

    def __init__(self, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._captured: Optional[Any] = None
        self._capture_lock = threading.Lock()

    @property
    def captured_proof(self) -> Optional[Any]:
        return self._captured

    def reset(self) -> None:
        with self._capture_lock:
            self._captured = None

    def emit(self, record: logging.LogRecord) -> None:
        if self._captured is not None:
            return
        try:
            candidates = [record.msg]
            if isinstance(record.args, dict):
                candidates.append(record.args)
                candidates.extend(record.args.values())
            elif record.args:
                candidates.extend(record.args)
            for candidate in candidates:
                proof = find_proof(candidate)
                if proof is not None:
                    with self._capture_lock:
                        if self._captured is None:
                            self._captured = proof
                    return
        except Exception:  # pragma: no cover - a handler must never break the SDK
            self.handleError(record)


@contextmanager
def capture_sdk_proofs(logger_name: str = "reclaim") -> Iterator[ProofCaptureHandler]:
    """Attach a :class:`ProofCaptureHandler` to ``logger_name`` for the duration of the block."""

    target = logging.getLogger(logger_name)
    handler = ProofCaptureHandler()
    previous_level = target.level
    if target.getEffectiveLevel() > logging.DEBUG:
        target.setLevel(logging.DEBUG)
    target.addHandler(handler)
    try:
        yield handler
    finally:
        target.removeHandler(handler)
        target.setLevel(previous_level)


__all__ = ["ProofCaptureHandler", "capture_sdk_proofs", "find_proof", "looks_like_proof"]
