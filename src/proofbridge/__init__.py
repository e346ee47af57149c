"""proofbridge: turn zero-knowledge account attestations into ledger contributions.

This package contains the proof delivery state machine, the provider-aware
extraction pipeline, and the callback relay used to hand proofs from the
attestation companion app back to the browser session that requested them.
"""

__version__ = "0.1.0"
