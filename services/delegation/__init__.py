"""
Delegation Service
==================

Delegation chains letting an executing account act for a root authority.

Version: 0.1.0
"""

from shared.blockchain.abi import ROOT_AUTHORITY, Execution

from services.delegation.chain import (
    Caveat,
    DelegationChain,
    DelegationLink,
    create_delegation,
)


__version__ = "0.1.0"

__all__ = [
    "ROOT_AUTHORITY",
    "Caveat",
    "DelegationChain",
    "DelegationLink",
    "Execution",
    "create_delegation",
]
