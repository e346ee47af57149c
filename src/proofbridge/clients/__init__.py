"""Clients for the external collaborators: Attestation Service, relay, Ledger API."""

from proofbridge.clients.attestation import AttestationRequest, AttestationService
from proofbridge.clients.ledger import LedgerClient
from proofbridge.clients.relay import RelayClient

__all__ = ["AttestationRequest", "AttestationService", "LedgerClient", "RelayClient"]
