"""
ZK-SNARK Data Models
====================

Pydantic models for proofs exchanged with the proving service.

Version: 0.1.0
"""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VcZkProof(BaseModel):
    """
    Proof bound to one credential commitment.

    `proof` is the serialized proof JSON string, exactly as the prover
    returned it; `public_signals` are decimal strings.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    public_signals: list[str] = Field(default_factory=list, alias="publicSignals")
    proof: str | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        alias="createdAt",
    )
    org_did: str | None = Field(default=None, alias="orgDid")
    vccomm: str | None = None
    is_valid: bool | None = Field(default=None, alias="isValid")

    def proof_json(self) -> dict[str, Any]:
        """Decoded proof document."""
        if not self.proof:
            raise ValueError("Proof payload is empty")
        return json.loads(self.proof)

    def to_json(self) -> str:
        """Serialized form stored in attestations."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, data: str) -> "VcZkProof":
        return cls.model_validate_json(data)


class VerificationResult(BaseModel):
    """Result of proof verification."""

    is_valid: bool
    public_signals: list[str] = Field(default_factory=list)
    cached: bool = False
    verified_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Error info
    error: str | None = None
