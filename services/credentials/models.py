"""
Credential Models
=================

W3C verifiable credential documents as issued by the commitment pipeline.

Serialized with the W3C camelCase keys. The entity id lives under
`credentialSubject.provider`, the key credential wallets index on.

Version: 0.1.0
"""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared.zk.models import VcZkProof


W3C_CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"
PROOF_TYPE = "EthereumEip712Signature2021"


def canonical_json(document: dict[str, Any]) -> str:
    """Stable JSON encoding: sorted keys, no whitespace."""
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class CredentialSubject(BaseModel):
    """
    Subject block of a credential.

    Claim fields (name, email, url, ...) are kept as extra attributes.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    entity_id: str | None = Field(default=None, alias="provider")
    display_name: str | None = Field(default=None, alias="displayName")
    verified_method: str | None = Field(default=None, alias="verifiedMethod")
    platform: str | None = None
    commitment: str | None = None
    commitment_signature: str | None = Field(default=None, alias="commitmentSignature")

    @property
    def claims(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def stamp(self, entity_id: str, display_name: str) -> None:
        """
        Bind the subject to its lookup key.

        Raises:
            ValueError: if a different entity id was already stamped
        """
        if self.entity_id is not None and self.entity_id != entity_id:
            raise ValueError(
                f"Subject already bound to entity {self.entity_id!r}, not {entity_id!r}"
            )
        self.entity_id = entity_id
        self.display_name = display_name


class CredentialProof(BaseModel):
    """Issuer signature over the credential without its proof block."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = PROOF_TYPE
    created: datetime
    proof_purpose: str = Field(default="assertionMethod", alias="proofPurpose")
    verification_method: str = Field(..., alias="verificationMethod")
    signature: str
    verifying_contract: str | None = Field(default=None, alias="verifyingContract")


class Credential(BaseModel):
    """W3C verifiable credential."""

    model_config = ConfigDict(populate_by_name=True)

    context: list[str] = Field(
        default_factory=lambda: [W3C_CREDENTIALS_CONTEXT],
        alias="@context",
    )
    type: list[str]
    issuer: str = Field(..., description="Issuer DID")
    issuance_date: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        alias="issuanceDate",
    )
    expiration_date: datetime | None = Field(default=None, alias="expirationDate")
    credential_subject: CredentialSubject = Field(..., alias="credentialSubject")
    proof: CredentialProof | None = None

    @property
    def is_committed(self) -> bool:
        subject = self.credential_subject
        return bool(subject.commitment and subject.commitment_signature)

    def to_document(self, include_proof: bool = True) -> dict[str, Any]:
        exclude = None if include_proof else {"proof"}
        return self.model_dump(by_alias=True, mode="json", exclude_none=True, exclude=exclude)

    def canonical_json(self, include_proof: bool = False) -> str:
        return canonical_json(self.to_document(include_proof=include_proof))

    def subject_json(self) -> str:
        """Canonical JSON of the subject, the input to the claim hash."""
        return canonical_json(
            self.credential_subject.model_dump(by_alias=True, mode="json", exclude_none=True)
        )


class IssuedCredential(BaseModel):
    """Output of the commitment pipeline."""

    vc_id: str
    credential: Credential
    proof: VcZkProof

    @property
    def commitment(self) -> str:
        return self.credential.credential_subject.commitment or ""
