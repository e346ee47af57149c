"""HTTP client for the Ledger API contribution endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from proofbridge.errors import TransientNetworkError
from proofbridge.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


class LedgerClient:
    """Thin async wrapper around ``POST <ledger>/contribute``.

    Transport failures become :class:`TransientNetworkError`; interpreting
    the HTTP status and body is left to the submitter.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        ledger = self.settings.ledger
        self._contribute_path = ledger.contribute_path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=ledger.base_url, timeout=ledger.timeout_seconds)

    async def post_contribution(self, payload: Dict[str, Any], *, bearer_token: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {bearer_token}"}
        try:
            return await self._client.post(self._contribute_path, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            LOGGER.warning("Ledger API unreachable: %s", exc)
            raise TransientNetworkError(
                f"Ledger API unreachable: {exc}",
                details={"path": self._contribute_path},
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["LedgerClient"]
