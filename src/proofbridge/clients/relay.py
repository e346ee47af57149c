"""HTTP client for the proof relay's one-time fetch endpoint."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from proofbridge.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class RelayClient:
    """Fetch proofs that the companion app delivered to the relay.

    Any non-success answer (404, 5xx, malformed body, connection error) is
    reported as "not there yet"; the poller decides when to stop.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        relay = self.settings.relay
        self._proof_path = relay.proof_path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=relay.base_url,
            timeout=relay.request_timeout_seconds,
        )

    async def fetch_proof(self, session_id: str) -> Optional[Any]:
        path = self._proof_path.format(session_id=quote(session_id, safe=""))
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            LOGGER.debug("Relay fetch for %s failed: %s", session_id, exc)
            return None
        if response.status_code != 200:
            return None
        try:
            body = response.json()
        except ValueError:
            LOGGER.warning("Relay returned a non-JSON body for %s", session_id)
            return None
        if not isinstance(body, dict) or not body.get("success") or body.get("proof") in (None, "", [], {}):
            return None
        return body["proof"]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["RelayClient"]
