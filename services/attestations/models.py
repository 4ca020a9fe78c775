"""
Attestation Models
==================

Pydantic models for claim attestations. Each subclass is bound to one
registered schema and maps its attributes onto the schema's field names.

Version: 0.1.0
"""

import time
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.blockchain.did import format_did
from shared.blockchain.eas import EMPTY_UID, AttestationRecord

from services.attestations import schemas
from services.attestations.schemas import SchemaDefinition


DEFAULT_VALIDITY_SECONDS = 365 * 24 * 60 * 60

BASE_FIELDS = {
    "entityid": "entity_id",
    "hash": "hash",
    "issuedate": "issuedate",
    "expiredate": "expiredate",
    "vccomm": "vccomm",
    "vcsig": "vcsig",
    "vciss": "vciss",
    "proof": "proof",
}


class Attestation(BaseModel):
    """
    Common attestation envelope.

    `attester` is the did:pkh of the account the attestation is published
    for; `class_` and `category` classify it for display.
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_def: ClassVar[SchemaDefinition]
    default_class: ClassVar[str] = "organization"
    extra_fields: ClassVar[dict[str, str]] = {}
    required_extras: ClassVar[tuple[str, ...]] = ()

    attester: str
    entity_id: str
    class_: str = Field(default="", alias="class")
    category: str = "profile"
    hash: str = EMPTY_UID
    vccomm: str = ""
    vcsig: str = ""
    vciss: str = ""
    vcid: str | None = None
    proof: str = ""
    issuedate: int = Field(default_factory=lambda: int(time.time()))
    expiredate: int = 0

    uid: str | None = None
    schema_uid: str | None = None

    @model_validator(mode="after")
    def _defaults(self) -> "Attestation":
        if not self.class_:
            self.class_ = self.default_class
        if not self.expiredate:
            self.expiredate = self.issuedate + DEFAULT_VALIDITY_SECONDS
        if self.schema_uid is None:
            self.schema_uid = self.schema_def.uid
        return self

    @property
    def display_name(self) -> str | None:
        field = self.schema_def.display_field
        if field is None:
            return None
        return getattr(self, self.extra_fields.get(field, field))

    def missing_fields(self) -> list[str]:
        """Envelope and claim fields that are empty."""
        required = ("attester", "entity_id", "vccomm", "vcsig", "vciss", "proof")
        return [name for name in required + self.required_extras if not getattr(self, name)]

    def schema_values(self) -> dict[str, Any]:
        """Values keyed by schema field name, ready for encoding."""
        mapping = BASE_FIELDS | self.extra_fields
        return {name: getattr(self, attribute) for name, attribute in mapping.items()}

    def encode(self) -> bytes:
        return self.schema_def.encoder.encode(self.schema_values())

    @classmethod
    def from_record(cls, record: AttestationRecord, chain_id: int) -> "Attestation":
        """Decode a ledger record into this attestation type."""
        values = cls.schema_def.encoder.decode(record.data)
        mapping = BASE_FIELDS | cls.extra_fields
        return cls(
            attester=format_did(chain_id, record.attester),
            uid=record.uid,
            schema_uid=record.schema_uid,
            **{attribute: values[name] for name, attribute in mapping.items()},
        )


class IndivAttestation(Attestation):
    schema_def = schemas.INDIV
    default_class = "individual"
    extra_fields = {"orgdid": "orgdid", "name": "name"}
    required_extras = ("name",)

    orgdid: str = ""
    name: str = ""


class IndivOrgAttestation(Attestation):
    """Membership of an individual in the organization."""

    schema_def = schemas.INDIV_ORG
    extra_fields = {"indivdid": "indivdid", "name": "name", "rolecid": "rolecid"}
    required_extras = ("name", "rolecid")

    indivdid: str = ""
    name: str = ""
    rolecid: str = ""


class OrgAttestation(Attestation):
    schema_def = schemas.ORG
    extra_fields = {"name": "name"}
    required_extras = ("name",)

    name: str = ""


class SocialAttestation(Attestation):
    schema_def = schemas.SOCIAL
    default_class = "individual"
    extra_fields = {"name": "name", "url": "url"}

    name: str = ""
    url: str = ""


class RegisteredDomainAttestation(Attestation):
    schema_def = schemas.REGISTERED_DOMAIN
    extra_fields = {"domain": "domain", "domaincreationdate": "domaincreationdate"}
    required_extras = ("domain", "domaincreationdate")

    domain: str = ""
    domaincreationdate: int = 0


class StateRegistrationAttestation(Attestation):
    schema_def = schemas.STATE_REGISTRATION
    extra_fields = {
        "name": "name",
        "idnumber": "idnumber",
        "status": "status",
        "formationdate": "formationdate",
        "locationaddress": "locationaddress",
    }
    required_extras = ("name",)

    name: str = ""
    idnumber: str = ""
    status: str = ""
    formationdate: int = 0
    locationaddress: str = ""


class EmailAttestation(Attestation):
    schema_def = schemas.EMAIL
    extra_fields = {"type": "type", "email": "email"}

    type: str = ""
    email: str = ""


class WebsiteAttestation(Attestation):
    schema_def = schemas.WEBSITE
    extra_fields = {"type": "type", "url": "url"}
    required_extras = ("type", "url")

    type: str = ""
    url: str = ""


class InsuranceAttestation(Attestation):
    schema_def = schemas.INSURANCE
    extra_fields = {"type": "type", "policy": "policy"}

    type: str = ""
    policy: str = ""


class IndivEmailAttestation(Attestation):
    # the schema's `class` field carries the email type
    schema_def = schemas.INDIV_EMAIL
    default_class = "individual"
    extra_fields = {"class": "type", "email": "email"}

    type: str = ""
    email: str = ""


ATTESTATION_TYPES: dict[str, type[Attestation]] = {
    cls.schema_def.uid.lower(): cls
    for cls in (
        IndivAttestation,
        IndivOrgAttestation,
        OrgAttestation,
        SocialAttestation,
        RegisteredDomainAttestation,
        StateRegistrationAttestation,
        EmailAttestation,
        WebsiteAttestation,
        InsuranceAttestation,
        IndivEmailAttestation,
    )
}


def attestation_type(schema_uid: str) -> type[Attestation]:
    """
    Model class for a claim schema.

    Raises:
        KeyError: if `schema_uid` is not a claim schema
    """
    return ATTESTATION_TYPES[schema_uid.lower()]


class RevokeAttestation(BaseModel):
    """Marks the credential with commitment `vccomm` as revoked."""

    uid: str
    schema_uid: str
    vccomm: str
    proof: str
    issuedate: int = 0


@dataclass(frozen=True)
class PublishOutcome:
    """Result of a publish: the attestation uid and whether it was new."""

    uid: str
    created: bool
    user_op_hash: str | None = None


@dataclass(frozen=True)
class DeletionResult:
    uid: str | None
    ok: bool
    error: str | None = None
