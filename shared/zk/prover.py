"""
Proving Service Client
======================

HTTP client for the external proving service that turns
`(issuerDidHash, didHash, vcHash)` into a hiding commitment and a
zero-knowledge proof, and checks proofs against a verification key.

Endpoints:
- POST /api/proof/commitment
- POST /api/proof/create
- POST /api/proof/checkproof

Version: 0.1.0
"""

import json
from typing import Any

import httpx

from shared.config import settings
from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.zk.models import VcZkProof


logger = get_logger(__name__)

# BN254 scalar field order
SNARK_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617


def hash_text(text: str) -> int:
    """Interpret the UTF-8 bytes of `text` as a big-endian integer."""
    return int.from_bytes(text.encode("utf-8"), "big")


def to_field(value: int) -> int:
    """Reduce into the proving system's scalar field."""
    return value % SNARK_FIELD


class CommitmentClient:
    """
    Proving service client.

    Usage:
        async with CommitmentClient() as prover:
            commitment = await prover.request_commitment(issuer_hash, did_hash, vc_hash)
            proof = await prover.create_proof(issuer_hash, did_hash, vc_hash, commitment, did)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url or settings.prover.url
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout or settings.prover.timeout_seconds),
            transport=transport,
        )

        logger.debug("commitment_client_initialized", base_url=self._base_url)

    async def __aenter__(self) -> "CommitmentClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "prover_request_failed",
                endpoint=path,
                status_code=e.response.status_code,
            )
            raise ExternalServiceError(
                "prover",
                f"{path} rejected",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("prover_unreachable", endpoint=path, error=str(e))
            raise ExternalServiceError("prover", f"{path} failed: {e}") from e

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ExternalServiceError("prover", f"{path} returned invalid JSON") from e

    async def request_commitment(
        self,
        issuer_did_hash: int,
        did_hash: int,
        vc_hash: int,
    ) -> int:
        """
        Request a commitment for the three hashes.

        Returns:
            The commitment as an integer
        """
        result = await self._post(
            "/api/proof/commitment",
            {
                "issuerDidHash": str(issuer_did_hash),
                "didHash": str(did_hash),
                "vcHash": str(vc_hash),
            },
        )
        if isinstance(result, dict):
            result = result.get("commitment")
        try:
            commitment = int(result)
        except (TypeError, ValueError) as e:
            raise ExternalServiceError("prover", f"Unexpected commitment: {result!r}") from e

        logger.info("commitment_received", commitment=str(commitment))
        return commitment

    async def create_proof(
        self,
        issuer_did_hash: int,
        did_hash: int,
        vc_hash: int,
        commitment: int,
        did: str,
    ) -> VcZkProof:
        """
        Request a proof binding the hashes to `commitment`.

        Returns:
            VcZkProof carrying the serialized proof and its public signals
        """
        result = await self._post(
            "/api/proof/create",
            {
                "inputs": {
                    "issuerDidHash": str(issuer_did_hash),
                    "didHash": str(did_hash),
                    "vcHash": str(vc_hash),
                    "commitment": str(commitment),
                },
                "commitment": str(commitment),
                "did": did,
            },
        )
        if not isinstance(result, dict) or "proofJson" not in result:
            raise ExternalServiceError("prover", "Proof response missing proofJson")

        proof_json = result["proofJson"]
        if not isinstance(proof_json, str):
            proof_json = json.dumps(proof_json)

        logger.info("proof_created", did=did)
        return VcZkProof(
            proof=proof_json,
            public_signals=[str(s) for s in result.get("publicSignals", [])],
            vccomm=str(commitment),
        )

    async def check_proof(
        self,
        verification_key: dict[str, Any],
        public_signals: list[str],
        proof_json: dict[str, Any],
    ) -> bool:
        """Ask the proving service whether `proof_json` verifies."""
        result = await self._post(
            "/api/proof/checkproof",
            {
                "verificationKey": verification_key,
                "publicSignals": public_signals,
                "zkProofJson": proof_json,
            },
        )
        if isinstance(result, dict):
            result = result.get("isValid", result.get("valid", False))
        return bool(result)
