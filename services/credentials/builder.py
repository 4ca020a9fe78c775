"""
Credential Builder
==================

Typed credential templates, one per claim kind. Every subject carries the
common envelope `{id, verifiedMethod, platform}` plus the kind's fields.

Version: 0.1.0
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shared.config import settings
from shared.errors import MissingContextError

from services.credentials.models import Credential, CredentialSubject


class CredentialKind(str, Enum):
    """Claim kinds that can be issued."""

    ORGANIZATION = "organization"
    INDIVIDUAL = "individual"
    INDIVIDUAL_ORG = "individual-org"
    ACCOUNT = "account"
    WEBSITE = "website"
    EMAIL = "email"
    INDIVIDUAL_EMAIL = "individual-email"
    SOCIAL = "social"
    DOMAIN = "domain"
    INSURANCE = "insurance"
    STATE_REGISTRATION = "state-registration"
    AGENT = "agent"


@dataclass(frozen=True)
class CredentialTemplate:
    credential_type: str
    required: tuple[str, ...]
    verified_method: str
    optional: tuple[str, ...] = field(default=())


TEMPLATES: dict[CredentialKind, CredentialTemplate] = {
    CredentialKind.ORGANIZATION: CredentialTemplate("OrgCredential", ("name",), "OAuth"),
    CredentialKind.INDIVIDUAL: CredentialTemplate("OrgCredential", ("org", "name"), "OAuth"),
    CredentialKind.INDIVIDUAL_ORG: CredentialTemplate(
        "IndivOrgCredential", ("org", "name"), "OAuth", optional=("roleCid",)
    ),
    CredentialKind.ACCOUNT: CredentialTemplate(
        "AccountCredential", ("accountName", "accountDid"), "Signature"
    ),
    CredentialKind.WEBSITE: CredentialTemplate(
        "WebsiteOwnershipCredential", ("type", "url"), "OAuth"
    ),
    CredentialKind.EMAIL: CredentialTemplate("EmailCredential", ("type", "email"), "oAuth"),
    CredentialKind.INDIVIDUAL_EMAIL: CredentialTemplate(
        "EmailCredential", ("type", "email"), "oAuth"
    ),
    CredentialKind.SOCIAL: CredentialTemplate(
        "SocialCredential", ("socialId", "socialUrl"), "OAuth"
    ),
    CredentialKind.DOMAIN: CredentialTemplate(
        "RegisteredDomainCredential", ("domainName", "createdOn"), "OAuth"
    ),
    CredentialKind.INSURANCE: CredentialTemplate("InsuranceCredential", ("insuranceId",), "OAuth"),
    CredentialKind.STATE_REGISTRATION: CredentialTemplate(
        "OrgStateRegistrationCredential",
        ("name", "idNumber", "status", "formationDate", "state", "locationAddress"),
        "State",
    ),
    CredentialKind.AGENT: CredentialTemplate(
        "AgentCredential", ("agentDomain", "agentAddress"), "Registry", optional=("agentId",)
    ),
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class CredentialBuilder:
    """
    Assembles unsigned, uncommitted credentials.

    Example:
        >>> builder = CredentialBuilder()
        >>> vc = builder.build(
        ...     CredentialKind.ORGANIZATION,
        ...     subject_did="did:pkh:eip155:10:0xABC...",
        ...     issuer_did="did:pkh:eip155:10:0xDEF...",
        ...     entity_id="org(org)",
        ...     name="Acme Inc.",
        ... )
    """

    def __init__(self, platform_prefix: str | None = None) -> None:
        self._platform_prefix = (
            platform_prefix if platform_prefix is not None else settings.credential.platform_prefix
        )

    def build(
        self,
        kind: CredentialKind | str,
        subject_did: str,
        issuer_did: str,
        entity_id: str,
        **fields: Any,
    ) -> Credential:
        """
        Build a credential of `kind`.

        Field keyword arguments may be snake_case (`social_url`) or
        camelCase (`socialUrl`).

        Raises:
            MissingContextError: if a DID or a required field is absent
        """
        template = TEMPLATES[CredentialKind(kind)]
        claims = {_camel(key): value for key, value in fields.items()}

        missing = [
            name
            for name, value in (
                ("subject_did", subject_did),
                ("issuer_did", issuer_did),
                ("entity_id", entity_id),
            )
            if not value
        ]
        missing += [name for name in template.required if claims.get(name) in (None, "")]
        if missing:
            raise MissingContextError(missing)

        allowed = set(template.required) | set(template.optional)
        unknown = sorted(set(claims) - allowed)
        if unknown:
            raise ValueError(f"Unexpected fields for {template.credential_type}: {unknown}")

        subject = CredentialSubject(
            id=subject_did,
            verifiedMethod=template.verified_method,
            platform=f"{self._platform_prefix}{entity_id}",
            **{name: claims[name] for name in template.required + template.optional if name in claims},
        )
        return Credential(
            type=["VerifiableCredential", template.credential_type],
            issuer=issuer_did,
            credentialSubject=subject,
        )
