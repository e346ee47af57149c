"""Observability helpers for structured logging and lightweight metrics."""

from __future__ import annotations

import json
import logging
import socket
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from proofbridge.settings import Settings, get_settings

_LOGGER = logging.getLogger("proofbridge.observability")
_METRICS_BACKEND_LOCK = threading.Lock()
_SHARED_METRICS: "_StatsdBackend | None" = None

# Proof payloads can be huge; events only ever carry a prefix.
_MAX_FIELD_CHARS = 512


class Observability:
    """Emit structured verification events and StatsD-compatible metrics."""

    def __init__(
        self,
        *,
        settings: Settings,
        component: str | None = None,
        metrics_backend: "_StatsdBackend | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.component = component or "core"
        self._logger = logger or _LOGGER
        self._structured_logging = bool(settings.observability.structured_logging)
        self._metrics = metrics_backend

    def emit_event(self, event: str, **fields: Any) -> None:
        """Emit a structured log if enabled."""

        payload = {
            "event": event,
            "component": self.component,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **{key: _serialize(value) for key, value in fields.items() if value is not None},
        }
        if self._structured_logging:
            self._logger.info(json.dumps(payload, default=str))
        else:
            self._logger.info("%s | %s", event, payload)

    def increment(self, metric: str, *, value: float = 1.0, tags: Mapping[str, str] | None = None) -> None:
        """Increment a counter-style metric."""

        if not self._metrics:
            return
        self._metrics.send(metric, value, metric_type="c", tags=tags)

    def record_timing(self, metric: str, value_ms: float, *, tags: Mapping[str, str] | None = None) -> None:
        """Record a timing metric in milliseconds."""

        if not self._metrics:
            return
        self._metrics.send(metric, value_ms, metric_type="ms", tags=tags)


def get_observability(*, component: str | None = None, settings: Settings | None = None) -> Observability:
    """Return an :class:`Observability` instance for the requested component."""

    resolved = settings or get_settings()
    backend = _build_shared_metrics_backend(resolved)
    return Observability(settings=resolved, component=component, metrics_backend=backend, logger=_LOGGER)


def reset_observability_cache() -> None:
    """Reset cached metrics backends (used in tests)."""

    global _SHARED_METRICS
    with _METRICS_BACKEND_LOCK:
        _SHARED_METRICS = None


@dataclass(slots=True)
class _StatsdBackend:
    """Minimal StatsD client using UDP sockets."""

    host: str
    port: int
    prefix: str

    def __post_init__(self) -> None:
        self._address = (self.host, self.port)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def send(self, metric: str, value: float, *, metric_type: str, tags: Mapping[str, str] | None) -> None:
        scoped = f"{self.prefix}.{metric}" if self.prefix else metric
        number = str(int(value)) if float(value).is_integer() else f"{value:.6f}".rstrip("0")
        payload = f"{scoped}:{number}|{metric_type}"
        if tags:
            tag_block = ",".join(f"{key}:{val}" for key, val in sorted(tags.items()) if val is not None)
            if tag_block:
                payload = f"{payload}|#{tag_block}"
        try:
            self._socket.sendto(payload.encode("utf-8"), self._address)
        except OSError:  # pragma: no cover - network errors are logged in structured logs
            _LOGGER.debug("StatsD send failed for metric %s", metric, exc_info=True)


def _build_shared_metrics_backend(settings: Settings) -> _StatsdBackend | None:
    global _SHARED_METRICS
    with _METRICS_BACKEND_LOCK:
        if _SHARED_METRICS is not None:
            return _SHARED_METRICS
        statsd_host = settings.observability.statsd_host
        if not statsd_host:
            return None
        _SHARED_METRICS = _StatsdBackend(
            host=statsd_host,
            port=settings.observability.statsd_port,
            prefix=settings.observability.statsd_prefix,
        )
        return _SHARED_METRICS


def _serialize(value: Any) -> Any:
    if isinstance(value, str):
        return value if len(value) <= _MAX_FIELD_CHARS else value[:_MAX_FIELD_CHARS] + "..."
    if isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _serialize(val) for key, val in value.items()}
    return str(value)


__all__ = ["Observability", "get_observability", "reset_observability_cache"]
