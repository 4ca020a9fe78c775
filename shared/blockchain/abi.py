"""
ABI Helpers
===========

Function-call encoding, ERC-7579 execution encoding and CREATE2 address
derivation used by the account, delegation and attestation layers.

Version: 0.1.0
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_utils import (
    function_signature_to_4byte_selector,
    keccak,
    to_bytes,
    to_checksum_address,
)


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

EXECUTE = "execute(bytes32,bytes)"
CREATE_ACCOUNT = "createAccount(address,uint256)"

# ERC-7579 mode: callType(1) | execType(1) | unused(4) | selector(4) | payload(22)
CALLTYPE_SINGLE = 0x00
CALLTYPE_BATCH = 0x01
SINGLE_DEFAULT_MODE = bytes(32)
BATCH_DEFAULT_MODE = bytes([CALLTYPE_BATCH]) + bytes(31)

_EXECUTION_ARRAY = "(address,uint256,bytes)[]"

# Delegation framework
REDEEM_DELEGATIONS = "redeemDelegations(bytes[],bytes32[],bytes[])"
DELEGATION_ARRAY = "(address,address,bytes32,(address,bytes,bytes)[],uint256,bytes)[]"
ROOT_AUTHORITY = b"\xff" * 32


@dataclass(frozen=True)
class Execution:
    """A single call made by a smart account."""

    target: str
    value: int = 0
    call_data: bytes = b""


# =============================================================================
# Function calls
# =============================================================================


def split_argument_types(signature: str) -> list[str]:
    """
    Split the top-level argument types of a function signature.

    Example:
        >>> split_argument_types("attest((bytes32,(address,uint64)))")
        ['(bytes32,(address,uint64))']
    """
    start = signature.index("(")
    inner = signature[start + 1 : signature.rindex(")")]
    types: list[str] = []
    depth = 0
    current = ""
    for char in inner:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        types.append(current)
    return types


def selector(signature: str) -> bytes:
    """Four-byte function selector."""
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, args: Sequence[Any]) -> bytes:
    """Encode a function call (selector followed by ABI-encoded arguments)."""
    return selector(signature) + encode(split_argument_types(signature), list(args))


def decode_call(signature: str, call_data: bytes) -> tuple[Any, ...]:
    """Decode call arguments, checking the selector matches `signature`."""
    if call_data[:4] != selector(signature):
        raise ValueError(f"Call data does not target {signature}")
    return decode(split_argument_types(signature), call_data[4:])


def to_bytes32(value: str | bytes | int) -> bytes:
    """Coerce a hex string, int or bytes to exactly 32 bytes."""
    if isinstance(value, int):
        return value.to_bytes(32, "big")
    raw = to_bytes(hexstr=value) if isinstance(value, str) else value
    if len(raw) > 32:
        raise ValueError("Value longer than 32 bytes")
    return raw.rjust(32, b"\x00")


def hex_bytes(value: bytes) -> str:
    return "0x" + value.hex()


# =============================================================================
# ERC-7579 executions
# =============================================================================


def encode_single_execution(execution: Execution) -> bytes:
    """Packed encoding: target(20) ++ value(32) ++ calldata."""
    return (
        to_bytes(hexstr=execution.target)
        + execution.value.to_bytes(32, "big")
        + execution.call_data
    )


def decode_single_execution(data: bytes) -> Execution:
    if len(data) < 52:
        raise ValueError("Single execution payload too short")
    return Execution(
        target=to_checksum_address(data[:20]),
        value=int.from_bytes(data[20:52], "big"),
        call_data=bytes(data[52:]),
    )


def encode_batch_executions(executions: Sequence[Execution]) -> bytes:
    return encode(
        [_EXECUTION_ARRAY],
        [[(e.target, e.value, e.call_data) for e in executions]],
    )


def decode_batch_executions(data: bytes) -> list[Execution]:
    (items,) = decode([_EXECUTION_ARRAY], data)
    return [
        Execution(target=to_checksum_address(target), value=value, call_data=call_data)
        for target, value, call_data in items
    ]


def encode_executions(executions: Sequence[Execution]) -> tuple[bytes, bytes]:
    """Return `(mode, execution_calldata)` for one or more executions."""
    if not executions:
        raise ValueError("At least one execution is required")
    if len(executions) == 1:
        return SINGLE_DEFAULT_MODE, encode_single_execution(executions[0])
    return BATCH_DEFAULT_MODE, encode_batch_executions(executions)


def decode_executions(mode: bytes, data: bytes) -> list[Execution]:
    call_type = mode[0]
    if call_type == CALLTYPE_SINGLE:
        return [decode_single_execution(data)]
    if call_type == CALLTYPE_BATCH:
        return decode_batch_executions(data)
    raise ValueError(f"Unsupported call type: {call_type:#x}")


def encode_execute(executions: Sequence[Execution]) -> bytes:
    """Account call data for `execute(bytes32,bytes)`."""
    mode, payload = encode_executions(executions)
    return encode_call(EXECUTE, [mode, payload])


def decode_execute(call_data: bytes) -> list[Execution]:
    mode, payload = decode_call(EXECUTE, call_data)
    return decode_executions(mode, payload)


# =============================================================================
# Delegations
# =============================================================================

CAVEAT_TYPEHASH = keccak(text="Caveat(address enforcer,bytes terms)")
DELEGATION_TYPEHASH = keccak(
    text=(
        "Delegation(address delegate,address delegator,bytes32 authority,"
        "Caveat[] caveats,uint256 salt)Caveat(address enforcer,bytes terms)"
    )
)


def delegation_hash(
    delegate: str,
    delegator: str,
    authority: bytes,
    caveats: Sequence[tuple[str, bytes]],
    salt: int,
) -> bytes:
    """Struct hash of a delegation; `caveats` are `(enforcer, terms)` pairs."""
    caveat_hashes = b"".join(
        keccak(encode(["bytes32", "address", "bytes32"], [CAVEAT_TYPEHASH, enforcer, keccak(terms)]))
        for enforcer, terms in caveats
    )
    return keccak(
        encode(
            ["bytes32", "address", "address", "bytes32", "bytes32", "uint256"],
            [DELEGATION_TYPEHASH, delegate, delegator, authority, keccak(caveat_hashes), salt],
        )
    )


# =============================================================================
# CREATE2
# =============================================================================


def account_salt(owner: str, salt: int) -> bytes:
    """Factory salt: keccak(abi.encode(owner, salt))."""
    return keccak(encode(["address", "uint256"], [owner, salt]))


def create2_address(factory: str, salt: bytes, init_code_hash: str | bytes) -> str:
    """keccak(0xff ++ factory ++ salt ++ init_code_hash)[12:]"""
    digest = keccak(
        b"\xff"
        + to_bytes(hexstr=factory)
        + to_bytes32(salt)
        + to_bytes32(init_code_hash)
    )
    return to_checksum_address(digest[12:])
