"""
Credential Commitment Service
=============================

Turns a plaintext claim into a committed, issuer-signed credential:

1. Stamp entity id / display name onto the subject
2. Hash subject JSON, issuer DID and subject DID
3. Request a commitment from the proving service
4. Request a proof for the same hashes plus the commitment
5. Sign the commitment with the issuer key
6. Embed commitment and signature into the subject
7. Sign the credential under the issuer DID
8. Persist through the holder's credential store

Version: 0.1.0
"""

from typing import TYPE_CHECKING

from shared.blockchain.signer import Signer, hash_message, recover_signer
from shared.cache import InMemoryCache, ResponseCache
from shared.errors import Err, ExternalServiceError, MissingContextError, Ok, Result
from shared.logging import bind_context, get_logger
from shared.zk.prover import CommitmentClient, hash_text

from services.credentials.models import Credential, CredentialProof, IssuedCredential
from services.credentials.store import CredentialStore, credential_id


if TYPE_CHECKING:
    from services.accounts.provisioner import SmartAccount


logger = get_logger(__name__)


class CredentialCommitmentService:
    """
    Issues committed credentials and looks them up again.

    Example:
        >>> service = CredentialCommitmentService(prover, store)
        >>> result = await service.create_credential(
        ...     claim, "org(org)", "Acme Inc.", subject_did, issuer_signer
        ... )
        >>> if result.is_ok:
        ...     print(result.value.commitment)
    """

    def __init__(
        self,
        prover: CommitmentClient,
        store: CredentialStore,
        cache: ResponseCache | None = None,
    ) -> None:
        self._prover = prover
        self._store = store
        self._cache = cache if cache is not None else InMemoryCache()

    @staticmethod
    def claim_hash(credential: Credential) -> int:
        """EIP-191 digest of the canonical subject JSON, as an integer."""
        return int.from_bytes(hash_message(credential.subject_json()), "big")

    async def create_credential(
        self,
        claim: Credential | None,
        entity_id: str,
        display_name: str,
        subject_did: str,
        issuer_account: Signer | None,
        executor_account: "SmartAccount | None" = None,
    ) -> Result[IssuedCredential]:
        """
        Run the commitment pipeline for `claim`.

        Args:
            claim: Unsigned credential from `CredentialBuilder`
            entity_id: Claim source identifier (e.g. "linkedin", "org(org)")
            display_name: Human-readable label, part of the lookup key
            subject_did: DID of the credential subject
            issuer_account: Signer for the issuer DID
            executor_account: Smart account that validates the issuer
                signature (ERC-1271), recorded on the proof

        Returns:
            Ok(IssuedCredential), Err(MissingContextError) when an input is
            absent, Err(ExternalServiceError) when the prover fails
        """
        missing = [
            name
            for name, value in (
                ("claim", claim),
                ("entity_id", entity_id),
                ("display_name", display_name),
                ("subject_did", subject_did),
                ("issuer_account", issuer_account),
            )
            if not value
        ]
        if claim is not None and not claim.issuer:
            missing.append("claim.issuer")
        if missing:
            logger.warning("credential_context_missing", fields=missing)
            return Err(MissingContextError(missing))

        bind_context(entity_id=entity_id, subject_did=subject_did)

        credential = claim.model_copy(deep=True)
        subject = credential.credential_subject
        subject.stamp(entity_id, display_name)

        issuer_did_hash = hash_text(credential.issuer)
        did_hash = hash_text(subject_did)
        vc_hash = self.claim_hash(credential)

        try:
            commitment = await self._prover.request_commitment(issuer_did_hash, did_hash, vc_hash)
            proof = await self._prover.create_proof(
                issuer_did_hash, did_hash, vc_hash, commitment, subject_did
            )
        except ExternalServiceError as e:
            logger.error("credential_commitment_failed", error=str(e))
            return Err(e)

        subject.commitment = str(commitment)
        subject.commitment_signature = issuer_account.sign_message(str(commitment))

        credential.proof = CredentialProof(
            created=credential.issuance_date,
            verificationMethod=credential.issuer,
            signature=issuer_account.sign_message(credential.canonical_json()),
            verifyingContract=executor_account.counterfactual_address if executor_account else None,
        )
        proof.org_did = subject_did

        vc_id = await self._store.save(credential)
        holder_did = await self._store.get_did()
        await self._cache.set(
            credential_id(entity_id, display_name, holder_did),
            credential.to_document(),
        )

        logger.info("credential_issued", vc_id=vc_id, commitment=subject.commitment)
        return Ok(IssuedCredential(vc_id=vc_id, credential=credential, proof=proof))

    async def get_credential(
        self,
        entity_id: str,
        display_name: str | None = None,
        holder_did: str | None = None,
    ) -> Credential | None:
        """
        Find a stored credential by entity id and display name.

        Checks the cache first, then scans the store matching
        `credentialSubject.provider` and `displayName` case-insensitively.
        """
        holder_did = holder_did or await self._store.get_did()
        key = credential_id(entity_id, display_name, holder_did)

        cached = await self._cache.get(key)
        if cached is not None:
            return Credential.model_validate(cached)

        for credential in await self._store.query():
            subject = credential.credential_subject
            if not subject.entity_id or subject.entity_id.lower() != entity_id.lower():
                continue
            if (
                display_name is not None
                and subject.display_name is not None
                and subject.display_name.lower() != display_name.lower()
            ):
                continue
            await self._cache.set(key, credential.to_document())
            return credential

        logger.debug("credential_not_found", entity_id=entity_id, display_name=display_name)
        return None

    @staticmethod
    def verify_commitment_signature(credential: Credential, issuer_address: str) -> bool:
        """True when the commitment signature recovers to `issuer_address`."""
        subject = credential.credential_subject
        if not subject.commitment or not subject.commitment_signature:
            return False
        try:
            signer = recover_signer(subject.commitment, subject.commitment_signature)
        except Exception as e:
            logger.warning("commitment_signature_unrecoverable", error=str(e))
            return False
        return signer.lower() == issuer_address.lower()
