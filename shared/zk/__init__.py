"""
ZK-SNARK Integration Module
===========================

Client for the external proving service and proof verification.

Usage:
    from shared.zk import CommitmentClient, ZkProofVerifier, hash_text

    async with CommitmentClient() as prover:
        commitment = await prover.request_commitment(
            hash_text(issuer_did), hash_text(subject_did), vc_hash
        )

        verifier = ZkProofVerifier(prover)
        result = await verifier.verify(proof, commitment, issuer_did, subject_did)

Version: 0.1.0
"""

from shared.zk.models import VcZkProof, VerificationResult
from shared.zk.prover import SNARK_FIELD, CommitmentClient, hash_text, to_field
from shared.zk.verifier import VerificationKeySource, ZkProofVerifier


__all__ = [
    # Prover
    "CommitmentClient",
    "SNARK_FIELD",
    "hash_text",
    "to_field",
    # Verifier
    "ZkProofVerifier",
    "VerificationKeySource",
    # Models
    "VcZkProof",
    "VerificationResult",
]
