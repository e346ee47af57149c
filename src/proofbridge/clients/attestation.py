"""Interface the core expects from the third-party Attestation Service SDK."""

from __future__ import annotations

from typing import Any, Protocol


class AttestationRequest(Protocol):
    """One proof request created by the SDK for a provider template."""

    def set_callback_url(self, url: str) -> None:
        """Ask the companion app to deliver the proof to ``url``.

        Raises ``CallbackUrlRejectedError`` (or ``ValueError``) when the SDK
        refuses the URL.
        """

    async def get_request_url(self) -> str:
        """Return the URL the user opens to start verification."""

    async def wait_for_proof(self) -> Any:
        """Resolve with the SDK's success payload.

        The payload is a proof object, an array of proofs, or a plain string
        when the proof was delivered to the callback URL instead. Failures
        raise ``AttestationSdkError``.
        """


class AttestationService(Protocol):
    def init_request(self, template_id: str) -> AttestationRequest:
        """Create a request for the given verification template."""


__all__ = ["AttestationRequest", "AttestationService"]
