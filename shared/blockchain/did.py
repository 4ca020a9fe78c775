"""
DID Helpers
===========

`did:pkh` identifiers binding a chain id and an account address.

Version: 0.1.0
"""

from eth_utils import is_address, to_checksum_address


DID_PREFIX = "did:pkh:eip155:"


def format_did(chain_id: int, address: str) -> str:
    """Build ``did:pkh:eip155:<chain>:<checksum address>``."""
    return f"{DID_PREFIX}{chain_id}:{to_checksum_address(address)}"


def parse_did(did: str) -> tuple[int, str]:
    """
    Split a `did:pkh` identifier.

    Returns:
        Tuple of (chain_id, checksum address)

    Raises:
        ValueError: if `did` is not an eip155 `did:pkh` identifier
    """
    if not did.startswith(DID_PREFIX):
        raise ValueError(f"Not a did:pkh eip155 identifier: {did}")
    chain, _, address = did[len(DID_PREFIX) :].partition(":")
    if not chain.isdigit() or not is_address(address):
        raise ValueError(f"Malformed did:pkh identifier: {did}")
    return int(chain), to_checksum_address(address)


def address_from_did(did: str) -> str:
    return parse_did(did)[1]
