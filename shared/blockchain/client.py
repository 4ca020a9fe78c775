"""
Chain Client Interface
======================

Abstract base class for the read-side ledger operations the services need
(bytecode presence, contract views, chain id), with a JSON-RPC
implementation and a process-wide client selected by `BLOCKCHAIN_MODE`.

Version: 0.1.0
"""

from abc import ABC, abstractmethod

from eth_utils import to_bytes

from shared.blockchain.abi import hex_bytes
from shared.blockchain.rpc import JsonRpcTransport
from shared.config import BlockchainMode, settings
from shared.logging import get_logger


logger = get_logger(__name__)


class ChainClient(ABC):
    """
    Abstract base class for chain clients.

    Implements the Strategy pattern for different blockchain modes.
    """

    @property
    @abstractmethod
    def mode(self) -> BlockchainMode:
        """Get the blockchain mode."""
        ...

    @abstractmethod
    async def chain_id(self) -> int:
        """Chain id of the connected network."""
        ...

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        """
        Deployed bytecode at `address`.

        Returns:
            Empty bytes when nothing is deployed
        """
        ...

    @abstractmethod
    async def call(self, to: str, data: bytes) -> bytes:
        """
        Execute a read-only contract call at the latest block.

        Args:
            to: Contract address
            data: ABI-encoded call data

        Returns:
            Raw return data
        """
        ...

    async def is_deployed(self, address: str) -> bool:
        """True when `address` holds contract code."""
        return len(await self.get_code(address)) > 0


class RpcChainClient(ChainClient):
    """Chain client over a node's JSON-RPC endpoint."""

    def __init__(
        self,
        transport: JsonRpcTransport | None = None,
        mode: BlockchainMode | None = None,
    ) -> None:
        self._mode = mode or settings.blockchain.mode
        self._rpc = transport or JsonRpcTransport(
            settings.blockchain.resolved_rpc_url,
            service="chain",
            timeout=settings.blockchain.timeout_seconds,
        )
        self._chain_id: int | None = None

    @property
    def mode(self) -> BlockchainMode:
        return self._mode

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self._rpc.request("eth_chainId"), 16)
        return self._chain_id

    async def get_code(self, address: str) -> bytes:
        code = await self._rpc.request("eth_getCode", [address, "latest"])
        return to_bytes(hexstr=code) if code else b""

    async def call(self, to: str, data: bytes) -> bytes:
        result = await self._rpc.request(
            "eth_call",
            [{"to": to, "data": hex_bytes(data)}, "latest"],
        )
        return to_bytes(hexstr=result) if result else b""

    async def aclose(self) -> None:
        await self._rpc.aclose()


# Global client instance
_client: ChainClient | None = None


def get_chain_client() -> ChainClient:
    """
    Get the configured chain client instance.

    Returns:
        ChainClient instance based on settings
    """
    global _client

    if _client is None:
        mode = settings.blockchain.mode

        if mode == BlockchainMode.MOCK:
            from shared.blockchain.mock import MockChainClient

            _client = MockChainClient()
        elif mode in (BlockchainMode.TESTNET, BlockchainMode.MAINNET):
            _client = RpcChainClient(mode=mode)
        else:
            raise ValueError(f"Unknown blockchain mode: {mode}")

        logger.info(
            "chain_client_initialized",
            mode=mode.value,
        )

    return _client


def set_chain_client(client: ChainClient) -> None:
    """
    Set a custom chain client.

    Args:
        client: ChainClient instance
    """
    global _client
    _client = client
    logger.info(
        "chain_client_set",
        mode=client.mode.value,
    )


def reset_chain_client() -> None:
    """Reset the client to be re-initialized."""
    global _client
    _client = None
