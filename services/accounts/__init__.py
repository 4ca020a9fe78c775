"""
Accounts Service
================

Smart account provisioning and sponsored execution.

This service provides:
- Deterministic counterfactual account derivation
- Bounded salt discovery with swappable validity checks
- Idempotent deployment through a sponsored no-op operation
- Sponsored user operations and delegation redemption
- Agent identity registration

Version: 0.1.0
"""

from services.accounts.executor import GasLimits, SponsoredExecutor
from services.accounts.identity import AgentInfo, IdentityRegistry, normalize_domain
from services.accounts.provisioner import (
    ImplementationKind,
    SmartAccount,
    SmartAccountProvisioner,
    agent_salts,
    individual_salts,
    not_blacklisted,
    not_deployed,
    organization_salts,
)


__version__ = "0.1.0"

__all__ = [
    "AgentInfo",
    "GasLimits",
    "IdentityRegistry",
    "ImplementationKind",
    "SmartAccount",
    "SmartAccountProvisioner",
    "SponsoredExecutor",
    "agent_salts",
    "individual_salts",
    "normalize_domain",
    "not_blacklisted",
    "not_deployed",
    "organization_salts",
]
