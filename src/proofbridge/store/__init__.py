from proofbridge.store.proof_store import ProofStore, StoredProof

__all__ = ["ProofStore", "StoredProof"]
