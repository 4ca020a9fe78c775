"""
ZK-SNARK Proof Verification
===========================

Verify credential proofs and revocation proofs through the proving
service, caching results.

Forward proofs are checked against public signals rebuilt from the
subject DID, issuer DID and commitment; revocation proofs are checked
against their own public signals with a separate verification key.

Version: 0.1.0
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx

from shared.cache import InMemoryCache, ResponseCache
from shared.config import settings
from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.zk.models import VcZkProof, VerificationResult
from shared.zk.prover import CommitmentClient, hash_text, to_field


logger = get_logger(__name__)


class VerificationKeySource:
    """
    Loads verification keys from URLs or file paths, once per source.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport
        self._keys: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, source: str) -> dict[str, Any]:
        async with self._lock:
            if source not in self._keys:
                self._keys[source] = await self._load(source)
                logger.debug("verification_key_loaded", source=source)
            return self._keys[source]

    async def _load(self, source: str) -> dict[str, Any]:
        if source.startswith(("http://", "https://")):
            async with httpx.AsyncClient(transport=self._transport) as client:
                try:
                    response = await client.get(source)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    raise ExternalServiceError("verification_key", f"{source}: {e}") from e
                return response.json()

        path = Path(source)
        try:
            return json.loads(await asyncio.to_thread(path.read_text, encoding="utf-8"))
        except OSError as e:
            raise ExternalServiceError("verification_key", f"{source}: {e}") from e


class ZkProofVerifier:
    """
    Verifies credential and revocation proofs.

    Failing proofs yield `is_valid=False`; only transport failures raise.

    Example:
        >>> verifier = ZkProofVerifier(prover, cache=InMemoryCache(capacity=1024))
        >>> result = await verifier.verify(proof, vccomm, issuer_did, subject_did)
        >>> result.is_valid
        True
    """

    def __init__(
        self,
        prover: CommitmentClient,
        cache: ResponseCache | None = None,
        keys: VerificationKeySource | None = None,
        verification_key: str | None = None,
        revoke_verification_key: str | None = None,
    ) -> None:
        self._prover = prover
        self._cache = cache if cache is not None else InMemoryCache()
        self._keys = keys or VerificationKeySource()
        self._verification_key = verification_key or settings.prover.verification_key
        self._revoke_verification_key = (
            revoke_verification_key or settings.prover.revoke_verification_key
        )

    @staticmethod
    def public_signals(commitment: str | int, issuer_did: str, subject_did: str) -> list[str]:
        """[hash(subject) mod FIELD, hash(issuer) mod FIELD, commitment]"""
        return [
            str(to_field(hash_text(subject_did))),
            str(to_field(hash_text(issuer_did))),
            str(commitment),
        ]

    async def verify(
        self,
        proof: VcZkProof | str,
        commitment: str | int,
        issuer_did: str,
        subject_did: str,
    ) -> VerificationResult:
        """
        Verify a credential proof.

        Args:
            proof: Proof (or its serialized form)
            commitment: Credential commitment
            issuer_did: DID of the issuer
            subject_did: DID of the credential subject

        Returns:
            VerificationResult; `cached` is True when no checker call was made
        """
        if isinstance(proof, str):
            proof = VcZkProof.from_json(proof)

        signals = self.public_signals(commitment, issuer_did, subject_did)
        if not proof.proof:
            return VerificationResult(is_valid=False, public_signals=signals, error="empty proof")

        cache_key = "".join(signals)
        cached = await self._cache.get(cache_key)
        if cached is not None:
            logger.debug("proof_verification_cache_hit", commitment=str(commitment))
            return VerificationResult(is_valid=bool(cached), public_signals=signals, cached=True)

        verification_key = await self._keys.get(self._verification_key)
        is_valid = await self._prover.check_proof(verification_key, signals, proof.proof_json())
        await self._cache.set(cache_key, is_valid)

        logger.info("proof_verified", commitment=str(commitment), valid=is_valid)
        return VerificationResult(is_valid=is_valid, public_signals=signals)

    async def verify_revocation(
        self,
        proof: VcZkProof | str,
        commitment: str | int,
    ) -> VerificationResult:
        """
        Check a revocation proof.

        Keyed by the proof document itself and checked against the proof's
        own public signals with the revocation verification key.
        """
        if isinstance(proof, str):
            proof = VcZkProof.from_json(proof)

        if not proof.proof or not proof.public_signals:
            return VerificationResult(is_valid=False, error="empty revocation proof")

        proof_json = proof.proof_json()
        cache_key = "revoke:" + json.dumps(proof_json, sort_keys=True, separators=(",", ":"))
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return VerificationResult(
                is_valid=bool(cached),
                public_signals=proof.public_signals,
                cached=True,
            )

        verification_key = await self._keys.get(self._revoke_verification_key)
        is_valid = await self._prover.check_proof(
            verification_key, proof.public_signals, proof_json
        )
        await self._cache.set(cache_key, is_valid)

        if is_valid:
            logger.info("credential_revoked", commitment=str(commitment))
        return VerificationResult(is_valid=is_valid, public_signals=proof.public_signals)
