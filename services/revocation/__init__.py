"""
Revocation Service
==================

Merkle-backed registry of revoked credential keys.

Version: 0.1.0
"""

from services.revocation.merkle import MerkleTree, leaf_hash, sha256
from services.revocation.registry import (
    FileRevokedKeyStore,
    InMemoryRevokedKeyStore,
    RevocationMerkleRegistry,
    RevokedKeyStore,
)


__version__ = "0.1.0"

__all__ = [
    "MerkleTree",
    "leaf_hash",
    "sha256",
    "RevocationMerkleRegistry",
    "RevokedKeyStore",
    "InMemoryRevokedKeyStore",
    "FileRevokedKeyStore",
]
