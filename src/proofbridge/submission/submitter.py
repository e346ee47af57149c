"""Send normalized records to the Ledger API as contributions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from proofbridge.clients.ledger import LedgerClient
from proofbridge.delivery.channel import DeliveryChannel
from proofbridge.errors import LedgerRejectedError, TransientNetworkError
from proofbridge.identity import UserIdentity
from proofbridge.normalization.models import NormalizedRecord
from proofbridge.observability import Observability, get_observability
from proofbridge.providers.registry import ProviderRegistry, get_registry

LOGGER = logging.getLogger(__name__)

RefreshHook = Callable[[], Optional[Awaitable[None]]]


class ContributionRequest(BaseModel):
    """Body of ``POST /contribute``; serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider_id: str = Field(serialization_alias="providerId")
    data_type: str = Field(serialization_alias="dataType")
    normalized_record: Dict[str, Any] = Field(serialization_alias="normalizedRecord")
    proof_identifier: str = Field(serialization_alias="proofIdentifier")
    submitted_at: datetime = Field(serialization_alias="submittedAt")
    wallet_address: Optional[str] = Field(default=None, serialization_alias="walletAddress")
    delivery_channel: Optional[DeliveryChannel] = Field(default=None, serialization_alias="deliveryChannel")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContributionReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    points_awarded: int = 0
    contribution_id: Optional[str] = None
    message: Optional[str] = None


def _server_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return fallback


def _points_awarded(body: Dict[str, Any]) -> int:
    contribution = body.get("contribution") if isinstance(body.get("contribution"), dict) else {}
    value = contribution.get("pointsAwarded", body.get("pointsAwarded", 0))
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class ContributionSubmitter:
    """Submit one normalized record per call; no retries at this layer."""

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        registry: ProviderRegistry | None = None,
        on_success: RefreshHook | None = None,
        observability: Observability | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self.registry = registry or get_registry()
        self.on_success = on_success
        self.observability = observability or get_observability(component="submission")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_request(
        self,
        record: NormalizedRecord,
        provider_id: str,
        proof_identifier: str,
        *,
        identity: UserIdentity | None = None,
        delivery_channel: DeliveryChannel | None = None,
    ) -> ContributionRequest:
        schema = self.registry.schema_for(provider_id)
        return ContributionRequest(
            provider_id=schema.provider_id,
            data_type=schema.data_type,
            normalized_record=dict(record.fields),
            proof_identifier=proof_identifier,
            submitted_at=self._clock(),
            wallet_address=identity.wallet_address if identity else None,
            delivery_channel=delivery_channel,
        )

    async def submit(
        self,
        record: NormalizedRecord,
        provider_id: str,
        proof_identifier: str,
        *,
        identity: UserIdentity,
        delivery_channel: DeliveryChannel | None = None,
    ) -> ContributionReceipt:
        """POST the contribution and interpret the Ledger API's answer.

        Raises:
            LedgerRejectedError: On a 4xx answer or ``success: false``; the
                server message is kept verbatim.
            TransientNetworkError: When the Ledger API is unreachable or
                answers with a 5xx.
        """

        request = self.build_request(
            record,
            provider_id,
            proof_identifier,
            identity=identity,
            delivery_channel=delivery_channel,
        )
        response = await self.ledger.post_contribution(request.to_payload(), bearer_token=identity.bearer_token())

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 500:
            self.observability.increment("contribution.failed", tags={"provider": provider_id, "reason": "server"})
            raise TransientNetworkError(
                f"Ledger API returned {response.status_code}",
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400 or not isinstance(body, dict) or body.get("success") is False:
            message = _server_message(body, f"Contribution rejected ({response.status_code})")
            self.observability.increment("contribution.failed", tags={"provider": provider_id, "reason": "rejected"})
            raise LedgerRejectedError(
                message,
                status_code=response.status_code,
                details={"provider_id": provider_id, "proof_identifier": proof_identifier},
            )

        contribution = body.get("contribution") if isinstance(body.get("contribution"), dict) else {}
        receipt = ContributionReceipt(
            accepted=True,
            points_awarded=_points_awarded(body),
            contribution_id=str(contribution["id"]) if contribution.get("id") is not None else None,
            message=_server_message(body, "") or None,
        )
        self.observability.emit_event(
            "contribution.accepted",
            provider_id=provider_id,
            proof_identifier=proof_identifier,
            points_awarded=receipt.points_awarded,
            delivery_channel=delivery_channel.value if delivery_channel else None,
        )
        if self.on_success is not None:
            # The ledger already accepted; a failed refresh must not undo that.
            try:
                outcome = self.on_success()
                if outcome is not None:
                    await outcome
            except Exception:
                LOGGER.exception("Refresh hook failed after contribution for %s", provider_id)
        return receipt


__all__ = ["ContributionReceipt", "ContributionRequest", "ContributionSubmitter", "RefreshHook"]
