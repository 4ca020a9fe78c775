"""
Delegation Chains
=================

Signed capability grants from a root authority down to an executing
account, and their encoding for `redeemDelegations`.

A chain is stored root-first: `links[0].delegator` is the root authority
and `links[-1].delegate` is the account allowed to redeem. Each link's
`authority` is the hash of its parent link (ROOT_AUTHORITY for the first).
The permission context sent on-chain is encoded leaf-first.

Version: 0.1.0
"""

import secrets
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from eth_abi import encode
from eth_utils import to_bytes, to_checksum_address

from shared.blockchain.abi import (
    DELEGATION_ARRAY,
    REDEEM_DELEGATIONS,
    ROOT_AUTHORITY,
    Execution,
    delegation_hash,
    encode_call,
    encode_executions,
)
from shared.blockchain.signer import Signer
from shared.errors import DelegationChainError
from shared.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Caveat:
    """Restriction enforced by an on-chain enforcer contract."""

    enforcer: str
    terms: bytes = b""
    args: bytes = b""


@dataclass(frozen=True)
class DelegationLink:
    """One signed grant from `delegator` to `delegate`."""

    delegator: str
    delegate: str
    authority: bytes
    caveats: tuple[Caveat, ...] = ()
    salt: int = 0
    signature: bytes = b""

    @property
    def is_root(self) -> bool:
        return self.authority == ROOT_AUTHORITY

    @property
    def hash(self) -> bytes:
        return delegation_hash(
            self.delegate,
            self.delegator,
            self.authority,
            [(c.enforcer, c.terms) for c in self.caveats],
            self.salt,
        )

    def to_abi(self) -> tuple:
        return (
            self.delegate,
            self.delegator,
            self.authority,
            [(c.enforcer, c.terms, c.args) for c in self.caveats],
            self.salt,
            self.signature,
        )


@dataclass(frozen=True)
class DelegationChain:
    """Ordered, immutable sequence of delegation links (root first)."""

    links: tuple[DelegationLink, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "links", tuple(self.links))

    def __len__(self) -> int:
        return len(self.links)

    def __iter__(self) -> Iterator[DelegationLink]:
        return iter(self.links)

    @property
    def root(self) -> str:
        if not self.links:
            raise DelegationChainError("Delegation chain is empty")
        return self.links[0].delegator

    @property
    def leaf_delegate(self) -> str:
        if not self.links:
            raise DelegationChainError("Delegation chain is empty")
        return self.links[-1].delegate

    def extend(self, link: DelegationLink) -> "DelegationChain":
        return DelegationChain(self.links + (link,))

    def validate(self, root: str, executor: str) -> None:
        """
        Check the chain authorizes `executor` to act for `root`.

        Raises:
            DelegationChainError: on an empty chain, a root or executor
                mismatch, or a break in delegator/delegate continuity or
                authority linkage
        """
        if not self.links:
            raise DelegationChainError("Delegation chain is empty")
        if self.root.lower() != root.lower():
            raise DelegationChainError(f"Chain root {self.root} does not match {root}")
        if self.leaf_delegate.lower() != executor.lower():
            raise DelegationChainError(
                f"Chain ends at {self.leaf_delegate}, not executing account {executor}"
            )
        if not self.links[0].is_root:
            raise DelegationChainError("First link must carry root authority")

        for index, (parent, child) in enumerate(zip(self.links, self.links[1:])):
            if parent.delegate.lower() != child.delegator.lower():
                raise DelegationChainError(
                    f"Link {index + 1} delegator {child.delegator} "
                    f"is not link {index} delegate {parent.delegate}"
                )
            if child.authority != parent.hash:
                raise DelegationChainError(f"Link {index + 1} authority is not link {index} hash")

    def to_permission_context(self) -> bytes:
        """ABI-encoded delegation array, leaf first."""
        return encode([DELEGATION_ARRAY], [[link.to_abi() for link in reversed(self.links)]])

    def encode_redeem(self, executions: Sequence[Execution]) -> bytes:
        """Call data for `redeemDelegations` with a single permission context."""
        mode, payload = encode_executions(executions)
        return encode_call(REDEEM_DELEGATIONS, [[self.to_permission_context()], [mode], [payload]])


def create_delegation(
    signer: Signer,
    delegator: str,
    delegate: str,
    parent: DelegationLink | None = None,
    caveats: Sequence[Caveat] = (),
    salt: int | None = None,
) -> DelegationLink:
    """
    Build and sign a delegation link.

    Args:
        signer: Key controlling `delegator`
        delegator: Account granting authority
        delegate: Account receiving authority
        parent: Link this one re-delegates; None for a root grant
        caveats: Restrictions on the grant
        salt: Disambiguates otherwise identical grants (random if omitted)
    """
    unsigned = DelegationLink(
        delegator=to_checksum_address(delegator),
        delegate=to_checksum_address(delegate),
        authority=parent.hash if parent else ROOT_AUTHORITY,
        caveats=tuple(caveats),
        salt=salt if salt is not None else secrets.randbits(64),
    )
    signature = to_bytes(hexstr=signer.sign_message(unsigned.hash))

    logger.info(
        "delegation_created",
        delegator=unsigned.delegator,
        delegate=unsigned.delegate,
        root=parent is None,
    )
    return DelegationLink(
        delegator=unsigned.delegator,
        delegate=unsigned.delegate,
        authority=unsigned.authority,
        caveats=unsigned.caveats,
        salt=unsigned.salt,
        signature=signature,
    )
