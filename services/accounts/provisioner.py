"""
Smart Account Provisioner
=========================

Deterministic derivation, salt discovery and one-time deployment of
counterfactual smart accounts.

Discovery is split into three parts:
- a generator of candidate salts (per account kind)
- a bounded, sequential retry loop (tenacity)
- a swappable validity predicate (blacklist, not-yet-deployed, ...)

Version: 0.1.0
"""

import itertools
from collections.abc import Awaitable, Callable, Collection, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from eth_utils import keccak, to_checksum_address
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
)

from shared.blockchain.abi import (
    CREATE_ACCOUNT,
    ZERO_ADDRESS,
    Execution,
    account_salt,
    create2_address,
    encode_call,
)
from shared.blockchain.client import ChainClient, get_chain_client
from shared.blockchain.signer import Signer
from shared.config import Settings, settings as default_settings
from shared.errors import AccountNotFoundError, Err, ExternalServiceError, Ok, Result
from shared.logging import get_logger


if TYPE_CHECKING:
    from services.accounts.executor import SponsoredExecutor


logger = get_logger(__name__)

Predicate = Callable[["SmartAccount"], Awaitable[bool]]


class ImplementationKind(str, Enum):
    """Smart account implementations."""

    HYBRID = "hybrid"
    MULTISIG = "multisig"


@dataclass(frozen=True)
class SmartAccount:
    """A counterfactual smart account; equality ignores the signatory."""

    owner_address: str
    implementation_kind: ImplementationKind
    deploy_salt: int
    counterfactual_address: str
    signatory: Signer | None = field(default=None, compare=False, repr=False)

    @property
    def address(self) -> str:
        return self.counterfactual_address

    def with_signatory(self, signatory: Signer) -> "SmartAccount":
        return SmartAccount(
            self.owner_address,
            self.implementation_kind,
            self.deploy_salt,
            self.counterfactual_address,
            signatory,
        )


# =============================================================================
# Salt candidates
# =============================================================================


def individual_salts(base: int | None = None) -> Iterator[int]:
    """Consecutive salts from the individual base seed."""
    return itertools.count(default_settings.account.individual_base_seed if base is None else base)


def organization_salts(seed: int | None = None) -> Iterator[int]:
    """The single fixed organization seed."""
    return iter([default_settings.account.organization_seed if seed is None else seed])


def agent_salts(domain: str) -> Iterator[int]:
    """Salts starting at keccak(lowercased domain)."""
    base = int.from_bytes(keccak(text=domain.strip().lower()), "big")
    return ((base + offset) % 2**256 for offset in itertools.count())


# =============================================================================
# Validity predicates
# =============================================================================


def not_blacklisted(blacklist: Collection[str]) -> Predicate:
    """Reject accounts whose address appears in `blacklist`."""
    blocked = {address.lower() for address in blacklist}

    async def check(account: SmartAccount) -> bool:
        return account.counterfactual_address.lower() not in blocked

    return check


def not_deployed(provisioner: "SmartAccountProvisioner") -> Predicate:
    """Accept only accounts with no code on-chain yet."""

    async def check(account: SmartAccount) -> bool:
        return not await provisioner.is_deployed(account)

    return check


class _SaltsExhausted(Exception):
    """The candidate generator ran dry before the attempt limit."""


class SmartAccountProvisioner:
    """
    Derives and deploys smart accounts.

    Example:
        >>> provisioner = SmartAccountProvisioner()
        >>> result = await provisioner.find_account(
        ...     owner, ImplementationKind.HYBRID, individual_salts(), signer,
        ...     is_valid=not_blacklisted(blocked),
        ... )
    """

    def __init__(
        self,
        chain: ChainClient | None = None,
        config: Settings | None = None,
    ) -> None:
        self._chain = chain or get_chain_client()
        self._settings = config or default_settings

    @property
    def chain(self) -> ChainClient:
        return self._chain

    def _factory(self, kind: ImplementationKind) -> tuple[str, str]:
        account = self._settings.account
        if kind == ImplementationKind.MULTISIG:
            return account.multisig_factory, account.multisig_init_code_hash
        return account.hybrid_factory, account.hybrid_init_code_hash

    def derive(
        self,
        owner: str,
        kind: ImplementationKind,
        salt: int,
        signatory: Signer | None = None,
    ) -> SmartAccount:
        """Counterfactual address for `(owner, kind, salt)`. No network access."""
        factory, init_code_hash = self._factory(kind)
        owner = to_checksum_address(owner)
        return SmartAccount(
            owner_address=owner,
            implementation_kind=kind,
            deploy_salt=salt,
            counterfactual_address=create2_address(
                factory, account_salt(owner, salt), init_code_hash
            ),
            signatory=signatory,
        )

    def factory_call(self, account: SmartAccount) -> tuple[str, bytes]:
        """`(factory, factory_data)` that deploys `account`."""
        factory, _ = self._factory(account.implementation_kind)
        return factory, encode_call(CREATE_ACCOUNT, [account.owner_address, account.deploy_salt])

    async def is_deployed(self, account: SmartAccount) -> bool:
        return await self._chain.is_deployed(account.counterfactual_address)

    async def find_account(
        self,
        owner: str,
        kind: ImplementationKind,
        salts: Iterable[int],
        signatory: Signer | None = None,
        is_valid: Predicate | None = None,
        attempts: int | None = None,
    ) -> Result[SmartAccount]:
        """
        Try salts in order and return the first valid account.

        At most `attempts` candidates are tried, strictly one after another.

        Returns:
            Ok(SmartAccount), Err(AccountNotFoundError) when every
            candidate was rejected or the salts ran out, or the
            ExternalServiceError that stopped discovery at the current salt
        """
        limit = attempts or self._settings.account.discovery_attempts
        candidates = iter(salts)

        async def attempt() -> SmartAccount | None:
            salt = next(candidates, None)
            if salt is None:
                raise _SaltsExhausted
            account = self.derive(owner, kind, salt, signatory)
            if is_valid is None or await is_valid(account):
                return account
            logger.debug(
                "account_candidate_rejected",
                salt=salt,
                address=account.counterfactual_address,
            )
            return None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(limit),
            retry=retry_if_result(lambda account: account is None),
            retry_error_callback=lambda state: None,
        )

        try:
            account = await retrying(attempt)
        except _SaltsExhausted:
            account = None
        except ExternalServiceError as e:
            logger.error("account_discovery_failed", owner=owner, kind=kind.value, error=str(e))
            return Err(e)

        if account is None:
            logger.warning("account_not_found", owner=owner, kind=kind.value, attempts=limit)
            return Err(AccountNotFoundError(f"No valid {kind.value} account for {owner}"))

        logger.info(
            "account_found",
            owner=owner,
            kind=kind.value,
            salt=account.deploy_salt,
            address=account.counterfactual_address,
        )
        return Ok(account)

    async def deploy(self, account: SmartAccount, executor: "SponsoredExecutor") -> bool:
        """
        Deploy `account` if it has no code yet.

        Sends a zero-value call to the null address; the factory data on
        the user operation performs the deployment.

        Returns:
            True if a deployment was submitted, False if already deployed
        """
        if await self.is_deployed(account):
            logger.debug("account_already_deployed", address=account.counterfactual_address)
            return False

        receipt = await executor.execute(account, [Execution(target=ZERO_ADDRESS)])
        if not receipt.success:
            raise ExternalServiceError("bundler", f"Deployment of {account.address} reverted")

        logger.info("account_deployed", address=account.counterfactual_address)
        return True

    async def derive_and_deploy(
        self,
        owner: str,
        kind: ImplementationKind,
        salts: Iterable[int],
        signatory: Signer,
        executor: "SponsoredExecutor",
        is_valid: Predicate | None = None,
    ) -> Result[SmartAccount]:
        """Find a valid account and make sure it is deployed."""
        found = await self.find_account(owner, kind, salts, signatory, is_valid)
        if not found.is_ok:
            return found
        try:
            await self.deploy(found.value, executor)
        except ExternalServiceError as e:
            logger.error("account_deployment_failed", error=str(e))
            return Err(e)
        return found
