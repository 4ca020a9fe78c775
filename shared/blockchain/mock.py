"""
Mock Ledger
===========

In-memory chain, bundler, attestation service and identity registry for
development and testing.

The mock bundler executes user operations synchronously on submission:
the sender is deployed when the operation carries factory data, the
`execute` call data is decoded and each execution is dispatched to the
handler registered for its target and selector. Delegation redemptions
are checked for continuity and re-dispatched as the root delegator.

Data is stored in memory and lost on restart.

Version: 0.1.0
"""

import hashlib
import itertools
import uuid
from collections.abc import Callable
from typing import Any

from eth_abi import decode, encode
from eth_utils import to_checksum_address

from shared.blockchain.abi import (
    DELEGATION_ARRAY,
    REDEEM_DELEGATIONS,
    ROOT_AUTHORITY,
    ZERO_ADDRESS,
    Execution,
    decode_call,
    decode_execute,
    decode_executions,
    delegation_hash,
    hex_bytes,
    selector,
    to_bytes32,
)
from shared.blockchain.bundler import (
    BundlerClient,
    GasPrice,
    GasPriceTiers,
    Log,
    UserOperation,
    UserOperationReceipt,
)
from shared.blockchain.client import ChainClient
from shared.blockchain.eas import (
    ATTEST,
    ATTESTED_TOPIC,
    REVOKE,
    REVOKED_TOPIC,
    AttestationRecord,
    attestation_uid,
)
from shared.config import BlockchainMode, settings
from shared.errors import ExternalServiceError
from shared.logging import get_logger


logger = get_logger(__name__)

CallHandler = Callable[[str, Execution], list[Log]]
ViewHandler = Callable[[bytes], bytes]

MOCK_PAYMASTER = "0x00000000000000fB866DaAA79352cC568a005D96"
MOCK_BYTECODE = b"\x60\x80\x60\x40"
DEFAULT_REGISTRY_ADDRESS = "0x000000000000000000000000000000000000A9e7"


class MockRevert(Exception):
    """Raised by mock contract handlers to revert an execution."""


def _topic(address: str) -> str:
    return hex_bytes(to_bytes32(address))


class MockChainClient(ChainClient):
    """In-memory chain state: deployed code and contract views."""

    def __init__(self, chain_id: int | None = None) -> None:
        self._chain_id = chain_id or settings.blockchain.chain_id
        self._code: dict[str, bytes] = {}
        self._views: dict[tuple[str, bytes], ViewHandler] = {}
        self.code_reads = 0

        logger.debug("mock_chain_initialized", chain_id=self._chain_id)

    @property
    def mode(self) -> BlockchainMode:
        return BlockchainMode.MOCK

    async def chain_id(self) -> int:
        return self._chain_id

    async def get_code(self, address: str) -> bytes:
        self.code_reads += 1
        return self._code.get(address.lower(), b"")

    def set_code(self, address: str, code: bytes = MOCK_BYTECODE) -> None:
        self._code[address.lower()] = code

    def register_view(self, address: str, signature: str, handler: ViewHandler) -> None:
        self._views[(address.lower(), selector(signature))] = handler

    async def call(self, to: str, data: bytes) -> bytes:
        handler = self._views.get((to.lower(), bytes(data[:4])))
        if handler is None:
            raise ExternalServiceError("chain", f"execution reverted: no view at {to}")
        return handler(data)


class MockBundlerClient(BundlerClient):
    """
    In-memory bundler and paymaster.

    Every submitted operation is recorded in `operations`; every
    sponsorship request increments `sponsorships`.
    """

    def __init__(self, chain: MockChainClient | None = None) -> None:
        self.chain = chain or MockChainClient()
        self._handlers: dict[tuple[str | None, bytes], CallHandler] = {}
        self._receipts: dict[str, UserOperationReceipt] = {}
        self.operations: list[UserOperation] = []
        self.sponsorships = 0
        self.redemptions: list[list[tuple[Any, ...]]] = []
        self.gas_price = GasPriceTiers(
            slow=GasPrice(max_fee_per_gas=1_000_000, max_priority_fee_per_gas=100_000),
            standard=GasPrice(max_fee_per_gas=1_500_000, max_priority_fee_per_gas=150_000),
            fast=GasPrice(max_fee_per_gas=2_000_000, max_priority_fee_per_gas=200_000),
        )

        self.register_handler(REDEEM_DELEGATIONS, self._redeem_delegations)

    @property
    def mode(self) -> BlockchainMode:
        return BlockchainMode.MOCK

    def register_handler(
        self,
        signature: str,
        handler: CallHandler,
        target: str | None = None,
    ) -> None:
        """Route calls matching `signature` (at `target`, or any address) to `handler`."""
        key = (target.lower() if target else None, selector(signature))
        self._handlers[key] = handler

    def dispatch(self, caller: str, execution: Execution) -> list[Log]:
        """Run one execution as `caller` and return its logs."""
        if not execution.call_data:
            return []
        sig = bytes(execution.call_data[:4])
        handler = self._handlers.get((execution.target.lower(), sig)) or self._handlers.get(
            (None, sig)
        )
        if handler is None:
            return []
        return handler(caller, execution)

    def _generate_tx_hash(self) -> str:
        return "0x" + hashlib.sha256(uuid.uuid4().bytes).hexdigest()

    async def get_gas_price(self) -> GasPriceTiers:
        return self.gas_price

    async def sponsor(self, op: UserOperation) -> dict[str, Any]:
        self.sponsorships += 1
        return {
            "paymaster": MOCK_PAYMASTER,
            "paymaster_data": b"\x01",
            "paymaster_verification_gas_limit": 50_000,
            "paymaster_post_op_gas_limit": 10_000,
            "call_gas_limit": op.call_gas_limit or 200_000,
            "verification_gas_limit": op.verification_gas_limit or 400_000,
            "pre_verification_gas": op.pre_verification_gas or 60_000,
        }

    async def send(self, op: UserOperation) -> str:
        if not op.paymaster:
            raise ExternalServiceError("bundler", "AA21 didn't pay prefund")
        if not op.call_gas_limit or not op.pre_verification_gas:
            raise ExternalServiceError("bundler", "gas limits must be non-zero")
        if not op.signature:
            raise ExternalServiceError("bundler", "AA24 signature error")

        deployed = await self.chain.is_deployed(op.sender)
        if op.factory and deployed:
            raise ExternalServiceError("bundler", "AA10 sender already constructed")
        if not op.factory and not deployed:
            raise ExternalServiceError("bundler", "AA20 account not deployed")
        if op.factory:
            self.chain.set_code(op.sender)

        op_hash = hex_bytes(op.hash(self.entry_point, await self.chain.chain_id()))
        self.operations.append(op)

        success = True
        logs: list[Log] = []
        try:
            for execution in decode_execute(op.call_data):
                logs.extend(self.dispatch(op.sender, execution))
        except (MockRevert, ValueError) as e:
            logger.debug("mock_user_operation_reverted", op_hash=op_hash, reason=str(e))
            success = False
            logs = []

        self._receipts[op_hash] = UserOperationReceipt(
            user_op_hash=op_hash,
            sender=op.sender,
            success=success,
            transaction_hash=self._generate_tx_hash(),
            logs=logs,
        )

        logger.debug("mock_user_operation_executed", op_hash=op_hash, success=success)
        return op_hash

    async def get_receipt(self, op_hash: str) -> UserOperationReceipt | None:
        return self._receipts.get(op_hash)

    # =========================================================================
    # Delegation framework
    # =========================================================================

    def _redeem_delegations(self, caller: str, execution: Execution) -> list[Log]:
        contexts, modes, payloads = decode_call(REDEEM_DELEGATIONS, execution.call_data)
        logs: list[Log] = []

        for context, mode, payload in zip(contexts, modes, payloads, strict=True):
            (links,) = decode([DELEGATION_ARRAY], context)
            if not links:
                raise MockRevert("empty delegation chain")

            # leaf first
            if links[0][0].lower() != caller.lower():
                raise MockRevert("InvalidDelegate")
            for child, parent in itertools.pairwise(links):
                parent_hash = delegation_hash(
                    parent[0], parent[1], parent[2], [(c[0], c[1]) for c in parent[3]], parent[4]
                )
                if child[2] != parent_hash or child[1].lower() != parent[0].lower():
                    raise MockRevert("InvalidAuthority")
            if links[-1][2] != ROOT_AUTHORITY:
                raise MockRevert("InvalidAuthority")

            self.redemptions.append(list(links))
            root = to_checksum_address(links[-1][1])
            for inner in decode_executions(mode, payload):
                logs.extend(self.dispatch(root, inner))

        return logs


class MockAttestationLedger:
    """
    In-memory attestation service.

    Handles `attest` / `revoke` executions routed through a
    `MockBundlerClient` and answers attestation index queries.
    """

    def __init__(self, bundler: MockBundlerClient, address: str | None = None) -> None:
        self.address = address or settings.blockchain.eas_contract_address
        self._records: dict[str, AttestationRecord] = {}
        self._clock = itertools.count(1_700_000_000)

        bundler.register_handler(ATTEST, self._attest, target=self.address)
        bundler.register_handler(REVOKE, self._revoke, target=self.address)

    @property
    def records(self) -> list[AttestationRecord]:
        return list(self._records.values())

    def _attest(self, caller: str, execution: Execution) -> list[Log]:
        ((schema, (recipient, _expiration, _revocable, _ref, data, _value)),) = decode_call(
            ATTEST, execution.call_data
        )
        schema_uid = hex_bytes(schema)
        uid = attestation_uid(
            schema_uid, recipient, caller, next(self._clock), data, bump=len(self._records)
        )
        self._records[uid] = AttestationRecord(
            uid=uid,
            schema_uid=schema_uid,
            attester=to_checksum_address(caller),
            recipient=to_checksum_address(recipient),
            data=hex_bytes(data),
        )
        logger.debug("mock_attestation_created", uid=uid, schema_uid=schema_uid)
        return [
            Log(
                address=self.address,
                topics=[ATTESTED_TOPIC, _topic(recipient), _topic(caller), schema_uid],
                data=uid,
            )
        ]

    def _revoke(self, caller: str, execution: Execution) -> list[Log]:
        ((schema, (uid_bytes, _value)),) = decode_call(REVOKE, execution.call_data)
        uid = hex_bytes(uid_bytes)
        record = self._records.get(uid)
        if record is None or record.revoked:
            raise MockRevert("InvalidRevocation")
        if record.attester.lower() != caller.lower():
            raise MockRevert("AccessDenied")
        record.revoked = True
        return [
            Log(
                address=self.address,
                topics=[REVOKED_TOPIC, _topic(record.recipient), _topic(caller), hex_bytes(schema)],
                data=uid,
            )
        ]

    async def get_attestations(self, attester: str, schema_uid: str) -> list[AttestationRecord]:
        """Non-revoked attestations by `attester` for `schema_uid`."""
        return [
            record
            for record in self._records.values()
            if not record.revoked
            and record.attester.lower() == attester.lower()
            and record.schema_uid.lower() == schema_uid.lower()
        ]


class MockIdentityRegistry:
    """
    In-memory agent identity registry.

    `read_lag` makes that many `resolveByDomain` reads after each
    registration return an empty entry, the way an indexer trails writes.
    """

    NEW_AGENT = "newAgent(string,address)"
    RESOLVE_BY_DOMAIN = "resolveByDomain(string)"

    def __init__(
        self,
        bundler: MockBundlerClient,
        address: str | None = None,
        read_lag: int = 0,
    ) -> None:
        self.address = to_checksum_address(
            address or settings.blockchain.identity_registry_address or DEFAULT_REGISTRY_ADDRESS
        )
        self.read_lag = read_lag
        self.registrations = 0
        self.reads = 0
        self._pending_lag = 0
        self._agents: dict[str, tuple[int, str, str]] = {}

        bundler.register_handler(self.NEW_AGENT, self._new_agent, target=self.address)
        bundler.chain.register_view(self.address, self.RESOLVE_BY_DOMAIN, self._resolve_by_domain)

    def _new_agent(self, caller: str, execution: Execution) -> list[Log]:
        domain, agent = decode_call(self.NEW_AGENT, execution.call_data)
        if domain in self._agents:
            raise MockRevert("DomainAlreadyRegistered")
        if agent.lower() != caller.lower():
            raise MockRevert("UnauthorizedAgent")
        self._agents[domain] = (len(self._agents) + 1, domain, to_checksum_address(agent))
        self.registrations += 1
        self._pending_lag = self.read_lag
        return []

    def _resolve_by_domain(self, data: bytes) -> bytes:
        self.reads += 1
        (domain,) = decode_call(self.RESOLVE_BY_DOMAIN, data)
        entry = self._agents.get(domain)
        if self._pending_lag > 0:
            self._pending_lag -= 1
            entry = None
        agent_id, agent_domain, agent_address = entry or (0, "", ZERO_ADDRESS)
        return encode(["uint256", "string", "address"], [agent_id, agent_domain, agent_address])
