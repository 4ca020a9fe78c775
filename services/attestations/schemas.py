"""
Attestation Schemas
===================

Registered attestation schemas. Every claim schema starts with the common
envelope (entity id, hash, dates, commitment, commitment signature, issuer,
proof) followed by its claim-specific fields.

Version: 0.1.0
"""

from dataclasses import dataclass
from functools import cached_property

from shared.blockchain.eas import SchemaEncoder


BASE_SCHEMA = (
    "string entityid, bytes32 hash, uint64 issuedate, uint64 expiredate, "
    "string vccomm, string vcsig, string vciss, string proof, "
)


@dataclass(frozen=True)
class SchemaDefinition:
    """A registered schema and the field that names its subject."""

    name: str
    uid: str
    fields: str
    display_field: str | None = None
    with_base: bool = True

    @property
    def definition(self) -> str:
        return (BASE_SCHEMA + self.fields) if self.with_base else self.fields

    @cached_property
    def encoder(self) -> SchemaEncoder:
        return SchemaEncoder(self.definition)


INDIV = SchemaDefinition(
    "indiv",
    "0x1212f2d47d77afd21f5fdb69e51c8d1898842b8e767417bc1681997bdf6900aa",
    "string orgdid, string name",
    display_field="name",
)
INDIV_ORG = SchemaDefinition(
    "indiv-org",
    "0x5c577b4315551f1b68e2a505e49545b447aef03befc0d0cfcb2a8bfac34dba3b",
    "string indivdid, string name, string rolecid",
    display_field="name",
)
ORG = SchemaDefinition(
    "org",
    "0xb868c40677eb842bcb2275dbaa311232ff8d57d594c15176e4e4d6f6df9902ea",
    "string name",
    display_field="name",
)
SOCIAL = SchemaDefinition(
    "social",
    "0xb05a2a08fd5afb49a338b27bb2e6cf1d8bd37992b23ad38a95f807d19c40782e",
    "string name, string url",
    display_field="name",
)
REGISTERED_DOMAIN = SchemaDefinition(
    "domain",
    "0x6a4f62a76d14e37a9885e66fbec0f37562a371ba6eb2e9907a65849ebe4f04f8",
    "string domain, uint64 domaincreationdate",
    display_field="domain",
)
STATE_REGISTRATION = SchemaDefinition(
    "state-registration",
    "0xbf0c8858b40faa691436c577b53a6cc4789a175268d230b7ea0c572b0f46c62b",
    "string name, string idnumber, string status, uint64 formationdate, string locationaddress",
    display_field="name",
)
EMAIL = SchemaDefinition(
    "email",
    "0x34c055dd7ac09404aa617dab38193f9fe80ab7f1abafb03cb7e38bee1589e2d0",
    "string type, string email",
    display_field="email",
)
WEBSITE = SchemaDefinition(
    "website",
    "0x5c209bedd0113303dbdd2cda8e8f9aaca673a567cd6a031cbb8cdaecbe01642b",
    "string type, string url",
    display_field="url",
)
INSURANCE = SchemaDefinition(
    "insurance",
    "0xcfca6622a02b4b1d7f49fc4edf63eff73b062b86c25b221e713ee8eea7d37b6f",
    "string type, string policy",
    display_field="policy",
)
INDIV_EMAIL = SchemaDefinition(
    "indiv-email",
    "0x0679112c62bedf14255c9b20b07486233f25e98505e1a8adb270e20c17893baf",
    "string class, string email",
    display_field="email",
)

# Not a claim schema: marks a commitment as revoked
REVOKE = SchemaDefinition(
    "revoke",
    "0x8ced29acd56451bf43c457bd0cc1c13aa213fcdcdbd872ab87674d3fbf9fc218",
    "string vccomm, string proof, uint64 issuedate",
    with_base=False,
)

CLAIM_SCHEMAS: tuple[SchemaDefinition, ...] = (
    INDIV,
    INDIV_ORG,
    ORG,
    SOCIAL,
    REGISTERED_DOMAIN,
    STATE_REGISTRATION,
    EMAIL,
    WEBSITE,
    INSURANCE,
    INDIV_EMAIL,
)

_BY_UID = {schema.uid.lower(): schema for schema in CLAIM_SCHEMAS + (REVOKE,)}


def schema_by_uid(uid: str) -> SchemaDefinition:
    """
    Look up a registered schema.

    Raises:
        KeyError: if `uid` is not registered
    """
    return _BY_UID[uid.lower()]
