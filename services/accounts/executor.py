"""
Sponsored Executor
==================

Builds, sponsors, signs and submits ERC-4337 user operations for smart
accounts, and redeems delegation chains through them.

Every operation:
- takes the bundler's `fast` fee tier unless a fee is supplied
- requests paymaster sponsorship with `{"mode": "SPONSORED"}`
- uses a fresh nonce key (milliseconds since epoch)

Version: 0.1.0
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_fixed

from shared.blockchain.abi import Execution, encode_execute
from shared.blockchain.bundler import (
    DUMMY_SIGNATURE,
    BundlerClient,
    GasPrice,
    UserOperation,
    UserOperationReceipt,
    encode_nonce,
    get_bundler_client,
)
from shared.blockchain.signer import Signer
from shared.config import Settings, settings as default_settings
from shared.errors import MissingContextError
from shared.logging import get_logger

from services.accounts.identity import AgentInfo, IdentityRegistry
from services.accounts.provisioner import SmartAccount, SmartAccountProvisioner
from services.delegation.chain import DelegationChain


logger = get_logger(__name__)


@dataclass(frozen=True)
class GasLimits:
    """Manual gas limits for a user operation."""

    call_gas_limit: int
    pre_verification_gas: int
    verification_gas_limit: int | None = None


class SponsoredExecutor:
    """
    Gas-sponsored execution for smart accounts.

    Example:
        >>> executor = SponsoredExecutor(provisioner)
        >>> receipt = await executor.execute(account, [Execution(target, 0, data)])
    """

    def __init__(
        self,
        provisioner: SmartAccountProvisioner,
        bundler: BundlerClient | None = None,
        config: Settings | None = None,
    ) -> None:
        self._provisioner = provisioner
        self._bundler = bundler or get_bundler_client()
        self._settings = config or default_settings
        self._last_nonce_key = 0

    @property
    def bundler(self) -> BundlerClient:
        return self._bundler

    def _next_nonce_key(self) -> int:
        key = max(time.time_ns() // 1_000_000, self._last_nonce_key + 1)
        self._last_nonce_key = key
        return key

    def apply_gas_minimums(self, gas: GasLimits) -> GasLimits:
        """Raise manual limits to the bundler's simulation minimums."""
        bundler_settings = self._settings.bundler
        call_gas = max(gas.call_gas_limit, bundler_settings.min_call_gas_limit)
        pre_verification = max(gas.pre_verification_gas, bundler_settings.min_pre_verification_gas)
        if call_gas != gas.call_gas_limit or pre_verification != gas.pre_verification_gas:
            logger.warning(
                "gas_limits_raised",
                call_gas_limit=gas.call_gas_limit,
                pre_verification_gas=gas.pre_verification_gas,
                raised_call_gas_limit=call_gas,
                raised_pre_verification_gas=pre_verification,
            )
        return GasLimits(
            call_gas_limit=call_gas,
            pre_verification_gas=pre_verification,
            verification_gas_limit=(
                gas.verification_gas_limit or bundler_settings.default_verification_gas_limit
            ),
        )

    async def send(
        self,
        account: SmartAccount,
        calls: Sequence[Execution],
        fee: GasPrice | None = None,
        gas: GasLimits | None = None,
        signer: Signer | None = None,
    ) -> str:
        """
        Submit `calls` from `account` as one sponsored user operation.

        The account is deployed by the same operation when it has no code.

        Returns:
            User operation hash
        """
        signer = signer or account.signatory
        if signer is None:
            raise MissingContextError(["signer"])

        op = UserOperation(
            sender=account.counterfactual_address,
            nonce=encode_nonce(self._next_nonce_key()),
            call_data=encode_execute(calls),
            signature=DUMMY_SIGNATURE,
        )
        if not await self._provisioner.is_deployed(account):
            factory, factory_data = self._provisioner.factory_call(account)
            op.factory = factory
            op.factory_data = factory_data

        fee = fee or (await self._bundler.get_gas_price()).fast
        op.max_fee_per_gas = fee.max_fee_per_gas
        op.max_priority_fee_per_gas = fee.max_priority_fee_per_gas

        manual_fields: set[str] = set()
        if gas is not None:
            gas = self.apply_gas_minimums(gas)
            op.call_gas_limit = gas.call_gas_limit
            op.pre_verification_gas = gas.pre_verification_gas
            op.verification_gas_limit = gas.verification_gas_limit or 0
            manual_fields = {"call_gas_limit", "pre_verification_gas", "verification_gas_limit"}

        sponsorship = await self._bundler.sponsor(op)
        for name, value in sponsorship.items():
            if name not in manual_fields:
                setattr(op, name, value)

        chain_id = await self._provisioner.chain.chain_id()
        op.signature = bytes.fromhex(
            signer.sign_message(op.hash(self._bundler.entry_point, chain_id))[2:]
        )

        op_hash = await self._bundler.send(op)
        logger.info(
            "user_operation_sent",
            sender=op.sender,
            op_hash=op_hash,
            calls=len(calls),
            deploys=op.factory is not None,
        )
        return op_hash

    async def wait(self, op_hash: str) -> UserOperationReceipt:
        receipt = await self._bundler.wait_for_receipt(op_hash)
        logger.info("user_operation_included", op_hash=op_hash, success=receipt.success)
        return receipt

    async def execute(
        self,
        account: SmartAccount,
        calls: Sequence[Execution],
        fee: GasPrice | None = None,
        gas: GasLimits | None = None,
        signer: Signer | None = None,
    ) -> UserOperationReceipt:
        """Send and wait for the receipt."""
        op_hash = await self.send(account, calls, fee=fee, gas=gas, signer=signer)
        return await self.wait(op_hash)

    def redemption_call(
        self,
        chain: DelegationChain,
        executions: Sequence[Execution],
        executing_account: SmartAccount,
    ) -> Execution:
        """`redeemDelegations` call the executing account makes on itself."""
        return Execution(
            target=executing_account.counterfactual_address,
            call_data=chain.encode_redeem(executions),
        )

    async def redeem(
        self,
        chain: DelegationChain,
        executions: Sequence[Execution],
        executing_account: SmartAccount,
        signer: Signer | None = None,
        gas: GasLimits | None = None,
    ) -> UserOperationReceipt:
        """
        Execute `executions` as the chain's root through `executing_account`.

        Raises:
            DelegationChainError: if the chain does not end at
                `executing_account` or is broken; nothing is submitted
        """
        chain.validate(chain.root, executing_account.counterfactual_address)
        call = self.redemption_call(chain, executions, executing_account)
        return await self.execute(executing_account, [call], gas=gas, signer=signer)

    async def ensure_identity_with_aa(
        self,
        registry: IdentityRegistry,
        domain: str,
        account: SmartAccount,
    ) -> AgentInfo | None:
        """
        Register `account` as the agent for `domain` unless already registered.

        The read after the write may trail the indexer; it is retried a
        bounded number of times and None is returned if still empty.
        """
        existing = await registry.resolve_by_domain(domain)
        if existing is not None:
            logger.debug("agent_already_registered", domain=domain, agent_id=existing.agent_id)
            return existing

        await self._provisioner.deploy(account, self)
        receipt = await self.execute(
            account,
            [registry.encode_new_agent(domain, account.counterfactual_address)],
        )
        if not receipt.success:
            logger.error(
                "agent_registration_reverted",
                domain=domain,
                op_hash=receipt.user_op_hash,
            )
            return None

        account_settings = self._settings.account
        retrying = AsyncRetrying(
            stop=stop_after_attempt(account_settings.registry_read_attempts),
            wait=wait_fixed(account_settings.registry_read_delay_seconds),
            retry=retry_if_result(lambda info: info is None),
            retry_error_callback=lambda state: None,
        )
        registered = await retrying(registry.resolve_by_domain, domain)

        logger.info(
            "agent_registered",
            domain=domain,
            address=account.counterfactual_address,
            resolved=registered is not None,
            tx_hash=receipt.transaction_hash,
        )
        return registered
