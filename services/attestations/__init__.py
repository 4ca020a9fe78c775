"""
Attestations Service
====================

Schema-typed on-chain attestations derived from issued credentials.

This service provides:
- A registry of attestation schemas
- Typed attestation models per claim kind
- De-duplicated publishing through delegation redemption
- Per-item deletion and revocation attestations
- Lookups against an attestation index

Version: 0.1.0
"""

from services.attestations.index import AttestationIndex, EasGraphQLIndex
from services.attestations.models import (
    Attestation,
    DeletionResult,
    EmailAttestation,
    IndivAttestation,
    IndivEmailAttestation,
    IndivOrgAttestation,
    InsuranceAttestation,
    OrgAttestation,
    PublishOutcome,
    RegisteredDomainAttestation,
    RevokeAttestation,
    SocialAttestation,
    StateRegistrationAttestation,
    WebsiteAttestation,
    attestation_type,
)
from services.attestations.publisher import AttestationPublisher, attested_uid
from services.attestations.schemas import CLAIM_SCHEMAS, SchemaDefinition, schema_by_uid


__version__ = "0.1.0"

__all__ = [
    "AttestationPublisher",
    "attested_uid",
    "AttestationIndex",
    "EasGraphQLIndex",
    "Attestation",
    "EmailAttestation",
    "IndivAttestation",
    "IndivEmailAttestation",
    "IndivOrgAttestation",
    "InsuranceAttestation",
    "OrgAttestation",
    "RegisteredDomainAttestation",
    "SocialAttestation",
    "StateRegistrationAttestation",
    "WebsiteAttestation",
    "RevokeAttestation",
    "PublishOutcome",
    "DeletionResult",
    "attestation_type",
    "CLAIM_SCHEMAS",
    "SchemaDefinition",
    "schema_by_uid",
]
