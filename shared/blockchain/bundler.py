"""
Bundler Client
==============

ERC-4337 (EntryPoint v0.7) user operations and the bundler / paymaster
JSON-RPC surface used for sponsored execution:

- pimlico_getUserOperationGasPrice
- pm_sponsorUserOperation
- eth_sendUserOperation
- eth_getUserOperationReceipt

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from typing import Any

from eth_abi import encode
from eth_utils import keccak, to_bytes
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from shared.blockchain.abi import hex_bytes
from shared.blockchain.rpc import JsonRpcTransport
from shared.config import BlockchainMode, settings
from shared.errors import ExternalServiceError
from shared.logging import get_logger


logger = get_logger(__name__)

SPONSORED_CONTEXT = {"mode": "SPONSORED"}

# Placeholder signature accepted by ECDSA validators during simulation
DUMMY_SIGNATURE = b"\xff" * 64 + b"\x1c"


def encode_nonce(key: int, sequence: int = 0) -> int:
    """EntryPoint nonce: 192-bit key in the high bits, 64-bit sequence below."""
    return (key << 64) | sequence


def _quantity(value: int) -> str:
    return hex(value)


def _int(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


# =============================================================================
# Models
# =============================================================================


class UserOperation(BaseModel):
    """An unpacked v0.7 user operation."""

    sender: str
    nonce: int
    factory: str | None = None
    factory_data: bytes = b""
    call_data: bytes = b""
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster: str | None = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b""
    signature: bytes = b""

    @property
    def init_code(self) -> bytes:
        if not self.factory:
            return b""
        return to_bytes(hexstr=self.factory) + self.factory_data

    @property
    def paymaster_and_data(self) -> bytes:
        if not self.paymaster:
            return b""
        return (
            to_bytes(hexstr=self.paymaster)
            + self.paymaster_verification_gas_limit.to_bytes(16, "big")
            + self.paymaster_post_op_gas_limit.to_bytes(16, "big")
            + self.paymaster_data
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """User operation hash as computed by EntryPoint v0.7."""
        account_gas_limits = (
            self.verification_gas_limit.to_bytes(16, "big")
            + self.call_gas_limit.to_bytes(16, "big")
        )
        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16, "big")
            + self.max_fee_per_gas.to_bytes(16, "big")
        )
        packed = encode(
            [
                "address",
                "uint256",
                "bytes32",
                "bytes32",
                "bytes32",
                "uint256",
                "bytes32",
                "bytes32",
            ],
            [
                self.sender,
                self.nonce,
                keccak(self.init_code),
                keccak(self.call_data),
                account_gas_limits,
                self.pre_verification_gas,
                gas_fees,
                keccak(self.paymaster_and_data),
            ],
        )
        return keccak(
            encode(["bytes32", "address", "uint256"], [keccak(packed), entry_point, chain_id])
        )

    def to_rpc(self) -> dict[str, Any]:
        """Serialize with the bundler's camelCase hex encoding."""
        payload: dict[str, Any] = {
            "sender": self.sender,
            "nonce": _quantity(self.nonce),
            "callData": hex_bytes(self.call_data),
            "callGasLimit": _quantity(self.call_gas_limit),
            "verificationGasLimit": _quantity(self.verification_gas_limit),
            "preVerificationGas": _quantity(self.pre_verification_gas),
            "maxFeePerGas": _quantity(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _quantity(self.max_priority_fee_per_gas),
            "signature": hex_bytes(self.signature),
        }
        if self.factory:
            payload["factory"] = self.factory
            payload["factoryData"] = hex_bytes(self.factory_data)
        if self.paymaster:
            payload["paymaster"] = self.paymaster
            payload["paymasterVerificationGasLimit"] = _quantity(
                self.paymaster_verification_gas_limit
            )
            payload["paymasterPostOpGasLimit"] = _quantity(self.paymaster_post_op_gas_limit)
            payload["paymasterData"] = hex_bytes(self.paymaster_data)
        return payload


class GasPrice(BaseModel):
    """Fee recommendation for one speed tier."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int


class GasPriceTiers(BaseModel):
    slow: GasPrice
    standard: GasPrice
    fast: GasPrice


class Log(BaseModel):
    address: str
    topics: list[str] = Field(default_factory=list)
    data: str = "0x"


class UserOperationReceipt(BaseModel):
    user_op_hash: str
    sender: str
    success: bool
    transaction_hash: str | None = None
    logs: list[Log] = Field(default_factory=list)


_SPONSORSHIP_FIELDS = {
    "paymaster": "paymaster",
    "paymasterData": "paymaster_data",
    "paymasterVerificationGasLimit": "paymaster_verification_gas_limit",
    "paymasterPostOpGasLimit": "paymaster_post_op_gas_limit",
    "callGasLimit": "call_gas_limit",
    "verificationGasLimit": "verification_gas_limit",
    "preVerificationGas": "pre_verification_gas",
}


def parse_sponsorship(result: dict[str, Any]) -> dict[str, Any]:
    """Map a `pm_sponsorUserOperation` result onto UserOperation fields."""
    fields: dict[str, Any] = {}
    for key, name in _SPONSORSHIP_FIELDS.items():
        if key not in result:
            continue
        value = result[key]
        if name == "paymaster":
            fields[name] = value
        elif name == "paymaster_data":
            fields[name] = to_bytes(hexstr=value)
        else:
            fields[name] = _int(value)
    return fields


def parse_receipt(result: dict[str, Any]) -> UserOperationReceipt:
    return UserOperationReceipt(
        user_op_hash=result["userOpHash"],
        sender=result["sender"],
        success=bool(result["success"]),
        transaction_hash=(result.get("receipt") or {}).get("transactionHash"),
        logs=[
            Log(address=log["address"], topics=log.get("topics", []), data=log.get("data", "0x"))
            for log in result.get("logs", [])
        ],
    )


# =============================================================================
# Client
# =============================================================================


class BundlerClient(ABC):
    """Abstract bundler + paymaster client."""

    @property
    @abstractmethod
    def mode(self) -> BlockchainMode: ...

    @property
    def entry_point(self) -> str:
        return settings.bundler.entry_point

    @abstractmethod
    async def get_gas_price(self) -> GasPriceTiers:
        """Current fee recommendations."""
        ...

    @abstractmethod
    async def sponsor(self, op: UserOperation) -> dict[str, Any]:
        """
        Request paymaster sponsorship.

        Returns:
            UserOperation field updates (paymaster fields and gas limits)
        """
        ...

    @abstractmethod
    async def send(self, op: UserOperation) -> str:
        """Submit a signed user operation; returns its hash."""
        ...

    @abstractmethod
    async def get_receipt(self, op_hash: str) -> UserOperationReceipt | None:
        """Receipt for `op_hash`, or None while still pending."""
        ...

    async def wait_for_receipt(
        self,
        op_hash: str,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> UserOperationReceipt:
        """
        Poll until the operation is included.

        Raises:
            ExternalServiceError: if no receipt appears within `timeout`
        """
        timeout = settings.bundler.receipt_timeout_seconds if timeout is None else timeout
        poll_interval = (
            settings.bundler.receipt_poll_interval_seconds
            if poll_interval is None
            else poll_interval
        )

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda receipt: receipt is None),
            stop=stop_after_delay(timeout),
            wait=wait_fixed(poll_interval),
        )
        try:
            return await retrying(self.get_receipt, op_hash)
        except RetryError as e:
            logger.error("user_operation_receipt_timeout", op_hash=op_hash, timeout=timeout)
            raise ExternalServiceError("bundler", f"No receipt for {op_hash}") from e


class RpcBundlerClient(BundlerClient):
    """Bundler and paymaster over JSON-RPC (Pimlico-compatible)."""

    def __init__(
        self,
        bundler: JsonRpcTransport | None = None,
        paymaster: JsonRpcTransport | None = None,
        mode: BlockchainMode | None = None,
    ) -> None:
        self._mode = mode or settings.blockchain.mode
        self._bundler = bundler or JsonRpcTransport(
            settings.bundler.url,
            service="bundler",
            timeout=settings.bundler.timeout_seconds,
        )
        self._paymaster = paymaster or JsonRpcTransport(
            settings.bundler.paymaster_url or settings.bundler.url,
            service="paymaster",
            timeout=settings.bundler.timeout_seconds,
        )

    @property
    def mode(self) -> BlockchainMode:
        return self._mode

    async def get_gas_price(self) -> GasPriceTiers:
        result = await self._bundler.request("pimlico_getUserOperationGasPrice")
        return GasPriceTiers(
            **{
                tier: GasPrice(
                    max_fee_per_gas=_int(result[tier]["maxFeePerGas"]),
                    max_priority_fee_per_gas=_int(result[tier]["maxPriorityFeePerGas"]),
                )
                for tier in ("slow", "standard", "fast")
            }
        )

    async def sponsor(self, op: UserOperation) -> dict[str, Any]:
        result = await self._paymaster.request(
            "pm_sponsorUserOperation",
            [op.to_rpc(), self.entry_point, SPONSORED_CONTEXT],
        )
        return parse_sponsorship(result or {})

    async def send(self, op: UserOperation) -> str:
        return await self._bundler.request("eth_sendUserOperation", [op.to_rpc(), self.entry_point])

    async def get_receipt(self, op_hash: str) -> UserOperationReceipt | None:
        result = await self._bundler.request("eth_getUserOperationReceipt", [op_hash])
        return parse_receipt(result) if result else None

    async def aclose(self) -> None:
        await self._bundler.aclose()
        await self._paymaster.aclose()


# Global client instance
_client: BundlerClient | None = None


def get_bundler_client() -> BundlerClient:
    """
    Get the configured bundler client instance.

    Returns:
        BundlerClient instance based on settings
    """
    global _client

    if _client is None:
        mode = settings.blockchain.mode

        if mode == BlockchainMode.MOCK:
            from shared.blockchain.mock import MockBundlerClient

            _client = MockBundlerClient()
        elif mode in (BlockchainMode.TESTNET, BlockchainMode.MAINNET):
            _client = RpcBundlerClient(mode=mode)
        else:
            raise ValueError(f"Unknown blockchain mode: {mode}")

        logger.info("bundler_client_initialized", mode=mode.value)

    return _client


def set_bundler_client(client: BundlerClient) -> None:
    """Set a custom bundler client."""
    global _client
    _client = client
    logger.info("bundler_client_set", mode=client.mode.value)


def reset_bundler_client() -> None:
    """Reset the client to be re-initialized."""
    global _client
    _client = None
