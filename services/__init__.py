"""
OrgTrust Services
=================

Services for delegated credential issuance and attestation.

Services:
- credentials: Commitment pipeline and holder credential stores
- delegation: Signed delegation chains and their redemption encoding
- accounts: Smart account derivation, deployment and sponsored execution
- attestations: Attestation publishing, lookup and deletion
- revocation: Merkle registry of revoked credential keys
"""

__all__ = [
    "credentials",
    "delegation",
    "accounts",
    "attestations",
    "revocation",
]
