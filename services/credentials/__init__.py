"""
Credentials Service
===================

Verifiable credential issuance through the commitment pipeline.

This service provides:
- Typed credential templates per claim kind
- Commitment and proof retrieval from the proving service
- Issuer signatures over the commitment and the credential
- Holder-side credential stores and cached lookups

Version: 0.1.0
"""

from services.credentials.builder import CredentialBuilder, CredentialKind
from services.credentials.models import (
    Credential,
    CredentialProof,
    CredentialSubject,
    IssuedCredential,
)
from services.credentials.service import CredentialCommitmentService
from services.credentials.store import (
    CredentialStore,
    FileCredentialStore,
    InMemoryCredentialStore,
    credential_id,
)


__version__ = "0.1.0"

__all__ = [
    "CredentialBuilder",
    "CredentialKind",
    "Credential",
    "CredentialProof",
    "CredentialSubject",
    "IssuedCredential",
    "CredentialCommitmentService",
    "CredentialStore",
    "FileCredentialStore",
    "InMemoryCredentialStore",
    "credential_id",
]
