"""
Agent Identity Registry
=======================

Read and write access to the on-chain agent registry:

- newAgent(string domain, address agentAddress)
- resolveByDomain(string domain) -> (uint256 agentId, string agentDomain, address agentAddress)

Domains are trimmed and lowercased before every call.

Version: 0.1.0
"""

from dataclasses import dataclass

from eth_abi import decode
from eth_utils import to_checksum_address

from shared.blockchain.abi import Execution, encode_call
from shared.blockchain.client import ChainClient
from shared.config import settings
from shared.errors import MissingContextError
from shared.logging import get_logger


logger = get_logger(__name__)

NEW_AGENT = "newAgent(string,address)"
RESOLVE_BY_DOMAIN = "resolveByDomain(string)"


def normalize_domain(domain: str) -> str:
    return domain.strip().lower()


@dataclass(frozen=True)
class AgentInfo:
    """A registered agent."""

    agent_id: int
    agent_domain: str
    agent_address: str


class IdentityRegistry:
    """Agent registry contract client."""

    def __init__(self, chain: ChainClient, address: str | None = None) -> None:
        address = address or settings.blockchain.identity_registry_address
        if not address:
            raise MissingContextError(["identity_registry_address"])
        self._chain = chain
        self.address = to_checksum_address(address)

    async def resolve_by_domain(self, domain: str) -> AgentInfo | None:
        """Registered agent for `domain`, or None."""
        raw = await self._chain.call(
            self.address,
            encode_call(RESOLVE_BY_DOMAIN, [normalize_domain(domain)]),
        )
        if not raw:
            return None
        agent_id, agent_domain, agent_address = decode(["uint256", "string", "address"], raw)
        if agent_id == 0:
            logger.debug("agent_not_registered", domain=normalize_domain(domain))
            return None
        return AgentInfo(
            agent_id=agent_id,
            agent_domain=agent_domain,
            agent_address=to_checksum_address(agent_address),
        )

    def encode_new_agent(self, domain: str, agent_address: str) -> Execution:
        """Registration call, to be sent from `agent_address`."""
        return Execution(
            target=self.address,
            call_data=encode_call(NEW_AGENT, [normalize_domain(domain), agent_address]),
        )
