"""
Attestation Service (EAS) Encoding
==================================

Schema data encoding and `attest`/`revoke` call construction for the
Ethereum Attestation Service, plus the ledger-side attestation record.

Version: 0.1.0
"""

from datetime import UTC, datetime
from typing import Any

from eth_abi import decode, encode
from eth_utils import keccak, to_bytes, to_checksum_address
from pydantic import BaseModel, Field

from shared.blockchain.abi import ZERO_ADDRESS, encode_call, hex_bytes, to_bytes32


ATTEST = "attest((bytes32,(address,uint64,bool,bytes32,bytes,uint256)))"
REVOKE = "revoke((bytes32,(bytes32,uint256)))"

ATTESTED_TOPIC = hex_bytes(keccak(text="Attested(address,address,bytes32,bytes32)"))
REVOKED_TOPIC = hex_bytes(keccak(text="Revoked(address,address,bytes32,bytes32)"))

EMPTY_UID = "0x" + "00" * 32


class SchemaEncoder:
    """
    Encode and decode attestation data for a schema string such as
    ``"string entityid, bytes32 hash, uint64 issuedate"``.

    Values are exchanged as plain dicts keyed by field name. `bytes32` and
    `bytes` fields accept hex strings and are decoded back to hex strings.
    """

    def __init__(self, schema: str) -> None:
        self.schema = schema
        self.fields: list[tuple[str, str]] = []
        for item in schema.split(","):
            item = item.strip()
            if not item:
                continue
            abi_type, name = item.split()
            self.fields.append((abi_type, name))

    @property
    def names(self) -> list[str]:
        return [name for _, name in self.fields]

    @property
    def types(self) -> list[str]:
        return [abi_type for abi_type, _ in self.fields]

    def encode(self, values: dict[str, Any]) -> bytes:
        missing = [name for name in self.names if name not in values]
        if missing:
            raise KeyError(f"Missing schema fields: {', '.join(missing)}")
        return encode(
            self.types,
            [self._to_abi(abi_type, values[name]) for abi_type, name in self.fields],
        )

    def decode(self, data: bytes | str) -> dict[str, Any]:
        raw = to_bytes(hexstr=data) if isinstance(data, str) else data
        decoded = decode(self.types, raw)
        return {
            name: self._from_abi(abi_type, value)
            for (abi_type, name), value in zip(self.fields, decoded, strict=True)
        }

    @staticmethod
    def _to_abi(abi_type: str, value: Any) -> Any:
        if abi_type == "bytes32":
            return to_bytes32(value or b"")
        if abi_type == "bytes" and isinstance(value, str):
            return to_bytes(hexstr=value)
        if abi_type.startswith("uint"):
            return int(value or 0)
        if abi_type == "string":
            return "" if value is None else str(value)
        return value

    @staticmethod
    def _from_abi(abi_type: str, value: Any) -> Any:
        if abi_type in ("bytes32", "bytes"):
            return hex_bytes(value)
        if abi_type == "address":
            return to_checksum_address(value)
        return value


def encode_attest(
    schema_uid: str,
    recipient: str,
    data: bytes,
    revocable: bool = True,
    expiration_time: int = 0,
    ref_uid: str = EMPTY_UID,
    value: int = 0,
) -> bytes:
    """Call data for `EAS.attest(AttestationRequest)`."""
    return encode_call(
        ATTEST,
        [
            (
                to_bytes32(schema_uid),
                (recipient, expiration_time, revocable, to_bytes32(ref_uid), data, value),
            )
        ],
    )


def encode_revoke(schema_uid: str, uid: str, value: int = 0) -> bytes:
    """Call data for `EAS.revoke(RevocationRequest)`."""
    return encode_call(REVOKE, [(to_bytes32(schema_uid), (to_bytes32(uid), value))])


def attestation_uid(
    schema_uid: str,
    recipient: str,
    attester: str,
    time: int,
    data: bytes,
    bump: int = 0,
) -> str:
    """Deterministic UID in the shape EAS derives it."""
    packed = (
        to_bytes32(schema_uid)
        + to_bytes(hexstr=recipient)
        + to_bytes(hexstr=attester)
        + time.to_bytes(8, "big")
        + (0).to_bytes(8, "big")
        + b"\x01"
        + bytes(32)
        + data
        + bump.to_bytes(4, "big")
    )
    return hex_bytes(keccak(packed))


class AttestationRecord(BaseModel):
    """An attestation as stored on the ledger / returned by the index."""

    uid: str
    schema_uid: str
    attester: str
    recipient: str = ZERO_ADDRESS
    data: str = "0x"
    revoked: bool = False
    time: datetime = Field(default_factory=lambda: datetime.now(UTC))
