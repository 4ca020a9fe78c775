"""
OrgTrust Shared Library
=======================

Common utilities, configuration and ledger abstractions shared across the
OrgTrust services.

Modules:
    - config: Configuration management with Pydantic Settings
    - logging: Structured logging with structlog
    - errors: Error taxonomy and the Ok/Err result type
    - cache: Response caches (in-memory LRU, Redis)
    - blockchain: Chain, bundler and attestation clients (mock/live)
    - zk: Proving service client and proof verification

Version: 0.1.0
"""

__version__ = "0.1.0"
__author__ = "OrgTrust Team"

from shared.config import settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
