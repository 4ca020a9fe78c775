"""
Blockchain Module
=================

Abstraction layer for ledger operations.

Supports:
- Mock (development/testing)
- Testnet (OP Sepolia)
- Mainnet (OP Mainnet)

Features:
- Chain reads (bytecode, contract views) over JSON-RPC
- ERC-4337 user operations through a bundler and sponsoring paymaster
- ERC-7579 execution and delegation encoding
- Attestation service (EAS) schema encoding
- did:pkh identifiers and EIP-191 signers

Usage:
    from shared.blockchain import get_bundler_client, get_chain_client

    chain = get_chain_client()
    deployed = await chain.is_deployed("0x...")

    bundler = get_bundler_client()
    receipt = await bundler.wait_for_receipt(op_hash)
"""

from shared.blockchain.abi import Execution
from shared.blockchain.bundler import (
    BundlerClient,
    GasPrice,
    UserOperation,
    UserOperationReceipt,
    get_bundler_client,
    reset_bundler_client,
    set_bundler_client,
)
from shared.blockchain.client import (
    ChainClient,
    get_chain_client,
    reset_chain_client,
    set_chain_client,
)
from shared.blockchain.did import address_from_did, format_did, parse_did
from shared.blockchain.mock import (
    MockAttestationLedger,
    MockBundlerClient,
    MockChainClient,
    MockIdentityRegistry,
)
from shared.blockchain.signer import LocalAccountSigner, Signer, recover_signer


__all__ = [
    # Clients
    "ChainClient",
    "BundlerClient",
    "get_chain_client",
    "set_chain_client",
    "reset_chain_client",
    "get_bundler_client",
    "set_bundler_client",
    "reset_bundler_client",
    # Models
    "Execution",
    "GasPrice",
    "UserOperation",
    "UserOperationReceipt",
    # Identity
    "Signer",
    "LocalAccountSigner",
    "recover_signer",
    "format_did",
    "parse_did",
    "address_from_did",
    # Implementations
    "MockChainClient",
    "MockBundlerClient",
    "MockAttestationLedger",
    "MockIdentityRegistry",
]
