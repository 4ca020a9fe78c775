"""
Tests for sponsored execution, delegation redemption and agent registration.
"""

import pytest

from shared.blockchain.abi import Execution, encode_call
from shared.blockchain.bundler import GasPrice, Log
from shared.blockchain.mock import (
    MOCK_PAYMASTER,
    MockBundlerClient,
    MockChainClient,
    MockIdentityRegistry,
    MockRevert,
)
from shared.blockchain.signer import LocalAccountSigner, recover_signer
from shared.config.settings import Settings
from shared.errors import DelegationChainError, MissingContextError

from services.accounts import (
    GasLimits,
    IdentityRegistry,
    ImplementationKind,
    SmartAccount,
    SmartAccountProvisioner,
    SponsoredExecutor,
)
from services.delegation import DelegationChain, create_delegation


TARGET = "0x6000000000000000000000000000000000000006"
PING = "ping()"


@pytest.fixture
def provisioner(mock_chain: MockChainClient, test_settings: Settings) -> SmartAccountProvisioner:
    return SmartAccountProvisioner(chain=mock_chain, config=test_settings)


@pytest.fixture
def executor(
    provisioner: SmartAccountProvisioner,
    mock_bundler: MockBundlerClient,
    test_settings: Settings,
) -> SponsoredExecutor:
    return SponsoredExecutor(provisioner, bundler=mock_bundler, config=test_settings)


@pytest.fixture
def org_account(
    provisioner: SmartAccountProvisioner, org_signer: LocalAccountSigner
) -> SmartAccount:
    return provisioner.derive(org_signer.address, ImplementationKind.HYBRID, 1, org_signer)


@pytest.fixture
def indiv_account(
    provisioner: SmartAccountProvisioner, indiv_signer: LocalAccountSigner
) -> SmartAccount:
    return provisioner.derive(indiv_signer.address, ImplementationKind.HYBRID, 100, indiv_signer)


@pytest.fixture
def issuer_account(
    provisioner: SmartAccountProvisioner, issuer_signer: LocalAccountSigner
) -> SmartAccount:
    return provisioner.derive(issuer_signer.address, ImplementationKind.HYBRID, 100, issuer_signer)


@pytest.fixture
def callers(mock_bundler: MockBundlerClient) -> list[str]:
    """Records who called `ping()` on TARGET."""
    seen: list[str] = []

    def handler(caller: str, execution: Execution) -> list[Log]:
        seen.append(caller)
        return []

    mock_bundler.register_handler(PING, handler, target=TARGET)
    return seen


def ping() -> Execution:
    return Execution(TARGET, 0, encode_call(PING, []))


class TestGasMinimums:
    def test_low_limits_are_raised(self, executor: SponsoredExecutor) -> None:
        gas = executor.apply_gas_minimums(GasLimits(call_gas_limit=1_000, pre_verification_gas=1_000))

        assert gas == GasLimits(500_000, 100_000, 600_000)

    def test_high_limits_are_kept(self, executor: SponsoredExecutor) -> None:
        gas = executor.apply_gas_minimums(GasLimits(900_000, 200_000, 700_000))

        assert gas == GasLimits(900_000, 200_000, 700_000)


class TestSend:
    @pytest.mark.asyncio
    async def test_first_operation_deploys_account(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
        callers: list[str],
    ) -> None:
        first = await executor.execute(org_account, [ping()])
        second = await executor.execute(org_account, [ping()])

        assert first.success and second.success
        first_op, second_op = mock_bundler.operations
        assert first_op.factory is not None and first_op.factory_data
        assert second_op.factory is None
        assert callers == [org_account.address, org_account.address]

    @pytest.mark.asyncio
    async def test_operation_is_sponsored_and_signed(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
        org_signer: LocalAccountSigner,
    ) -> None:
        await executor.send(org_account, [ping()])

        op = mock_bundler.operations[-1]
        assert mock_bundler.sponsorships == 1
        assert op.paymaster == MOCK_PAYMASTER
        assert op.max_fee_per_gas == mock_bundler.gas_price.fast.max_fee_per_gas
        assert recover_signer(op.hash(mock_bundler.entry_point, 10), op.signature) == (
            org_signer.address
        )

    @pytest.mark.asyncio
    async def test_explicit_fee_and_manual_gas(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        fee = GasPrice(max_fee_per_gas=42, max_priority_fee_per_gas=7)

        await executor.send(org_account, [ping()], fee=fee, gas=GasLimits(10, 10))

        op = mock_bundler.operations[-1]
        assert op.max_fee_per_gas == 42
        assert op.call_gas_limit == 500_000
        assert op.pre_verification_gas == 100_000
        assert op.verification_gas_limit == 600_000

    @pytest.mark.asyncio
    async def test_nonce_keys_increase(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        await executor.send(org_account, [ping()])
        await executor.send(org_account, [ping()])

        first, second = mock_bundler.operations
        assert second.nonce > first.nonce

    @pytest.mark.asyncio
    async def test_signer_required(
        self,
        executor: SponsoredExecutor,
        provisioner: SmartAccountProvisioner,
        org_signer: LocalAccountSigner,
    ) -> None:
        account = provisioner.derive(org_signer.address, ImplementationKind.HYBRID, 1)

        with pytest.raises(MissingContextError):
            await executor.send(account, [ping()])


class TestRedeem:
    @pytest.mark.asyncio
    async def test_issuer_acts_for_organization(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
        indiv_account: SmartAccount,
        issuer_account: SmartAccount,
        org_signer: LocalAccountSigner,
        indiv_signer: LocalAccountSigner,
        callers: list[str],
    ) -> None:
        root = create_delegation(org_signer, org_account.address, indiv_account.address)
        child = create_delegation(
            indiv_signer, indiv_account.address, issuer_account.address, parent=root
        )
        chain = DelegationChain((root, child))

        receipt = await executor.redeem(chain, [ping()], issuer_account)

        assert receipt.success
        assert callers == [org_account.address]
        assert mock_bundler.operations[-1].sender == issuer_account.address
        assert len(mock_bundler.redemptions) == 1

    @pytest.mark.asyncio
    async def test_redeem_by_wrong_account_is_not_submitted(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        mock_chain: MockChainClient,
        org_account: SmartAccount,
        indiv_account: SmartAccount,
        issuer_account: SmartAccount,
        org_signer: LocalAccountSigner,
        callers: list[str],
    ) -> None:
        chain = DelegationChain(
            (create_delegation(org_signer, org_account.address, indiv_account.address),)
        )

        with pytest.raises(DelegationChainError, match="not executing account"):
            await executor.redeem(chain, [ping()], issuer_account)

        assert mock_bundler.operations == []
        assert not await mock_chain.is_deployed(issuer_account.address)
        assert callers == []

    @pytest.mark.asyncio
    async def test_broken_chain_is_not_submitted(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
        indiv_account: SmartAccount,
        issuer_account: SmartAccount,
        org_signer: LocalAccountSigner,
        indiv_signer: LocalAccountSigner,
    ) -> None:
        root = create_delegation(org_signer, org_account.address, indiv_account.address)
        orphan = create_delegation(indiv_signer, indiv_account.address, issuer_account.address)

        with pytest.raises(DelegationChainError):
            await executor.redeem(DelegationChain((root, orphan)), [ping()], issuer_account)

        assert mock_bundler.operations == []

    def test_redemption_targets_executing_account(
        self,
        executor: SponsoredExecutor,
        org_account: SmartAccount,
        issuer_account: SmartAccount,
        org_signer: LocalAccountSigner,
    ) -> None:
        chain = DelegationChain(
            (create_delegation(org_signer, org_account.address, issuer_account.address),)
        )

        call = executor.redemption_call(chain, [ping()], issuer_account)

        assert call.target == issuer_account.address
        assert call.call_data == chain.encode_redeem([ping()])


class TestEnsureIdentity:
    DOMAIN = "Acme.com"

    def registry_pair(
        self, mock_bundler: MockBundlerClient, read_lag: int = 0
    ) -> tuple[MockIdentityRegistry, IdentityRegistry]:
        ledger = MockIdentityRegistry(mock_bundler, read_lag=read_lag)
        return ledger, IdentityRegistry(mock_bundler.chain, address=ledger.address)

    @pytest.mark.asyncio
    async def test_registers_once(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        ledger, registry = self.registry_pair(mock_bundler)

        first = await executor.ensure_identity_with_aa(registry, self.DOMAIN, org_account)
        operations = len(mock_bundler.operations)
        second = await executor.ensure_identity_with_aa(registry, "acme.com ", org_account)

        assert first is not None
        assert first.agent_domain == "acme.com"
        assert first.agent_address == org_account.address
        assert second == first
        assert len(mock_bundler.operations) == operations
        assert ledger.registrations == 1

    @pytest.mark.asyncio
    async def test_read_after_write_is_retried(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        ledger, registry = self.registry_pair(mock_bundler, read_lag=2)

        info = await executor.ensure_identity_with_aa(registry, self.DOMAIN, org_account)

        assert info is not None
        # one lookup before registering, three after
        assert ledger.reads == 4

    @pytest.mark.asyncio
    async def test_read_lag_beyond_attempts(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        ledger, registry = self.registry_pair(mock_bundler, read_lag=3)

        info = await executor.ensure_identity_with_aa(registry, self.DOMAIN, org_account)

        assert info is None
        assert ledger.registrations == 1

    @pytest.mark.asyncio
    async def test_reverted_registration(
        self,
        executor: SponsoredExecutor,
        mock_bundler: MockBundlerClient,
        org_account: SmartAccount,
    ) -> None:
        ledger, registry = self.registry_pair(mock_bundler)

        def reject(caller: str, execution: Execution) -> list[Log]:
            raise MockRevert("paused")

        mock_bundler.register_handler(ledger.NEW_AGENT, reject, target=ledger.address)

        assert await executor.ensure_identity_with_aa(registry, self.DOMAIN, org_account) is None
        assert await mock_bundler.chain.is_deployed(org_account.address)
