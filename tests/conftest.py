"""
Test Configuration
==================

Pytest fixtures for OrgTrust tests.
"""

import json
import os
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["BLOCKCHAIN_MODE"] = "mock"

from shared.blockchain.mock import (  # noqa: E402
    MockAttestationLedger,
    MockBundlerClient,
    MockChainClient,
    MockIdentityRegistry,
)
from shared.blockchain.signer import LocalAccountSigner  # noqa: E402
from shared.config.settings import AccountSettings, Settings  # noqa: E402
from shared.zk.prover import CommitmentClient  # noqa: E402


ORG_KEY = "0x" + "11" * 32
INDIV_KEY = "0x" + "22" * 32
ISSUER_KEY = "0x" + "33" * 32

COMMITMENT = 987654321
PROOF_DOCUMENT = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


# =============================================================================
# Keys
# =============================================================================


@pytest.fixture
def org_signer() -> LocalAccountSigner:
    return LocalAccountSigner(ORG_KEY)


@pytest.fixture
def indiv_signer() -> LocalAccountSigner:
    return LocalAccountSigner(INDIV_KEY)


@pytest.fixture
def issuer_signer() -> LocalAccountSigner:
    return LocalAccountSigner(ISSUER_KEY)


# =============================================================================
# Mock ledger
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no waits between registry re-reads."""
    return Settings(
        account=AccountSettings(registry_read_attempts=3, registry_read_delay_seconds=0),
    )


@pytest.fixture
def mock_chain() -> MockChainClient:
    return MockChainClient(chain_id=10)


@pytest.fixture
def mock_bundler(mock_chain: MockChainClient) -> MockBundlerClient:
    return MockBundlerClient(chain=mock_chain)


@pytest.fixture
def mock_ledger(mock_bundler: MockBundlerClient) -> MockAttestationLedger:
    return MockAttestationLedger(mock_bundler)


@pytest.fixture
def mock_registry(mock_bundler: MockBundlerClient) -> MockIdentityRegistry:
    return MockIdentityRegistry(mock_bundler)


# =============================================================================
# Proving service
# =============================================================================


class ProverStub:
    """Records proving service requests and answers them."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.commitment: Any = {"commitment": str(COMMITMENT)}
        self.valid = True
        self.fail_path: str | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))

        if request.url.path == self.fail_path:
            return httpx.Response(500, json={"error": "prover down"})
        if request.url.path == "/api/proof/commitment":
            return httpx.Response(200, json=self.commitment)
        if request.url.path == "/api/proof/create":
            return httpx.Response(
                200,
                json={"proofJson": json.dumps(PROOF_DOCUMENT), "publicSignals": ["1", "2", "3"]},
            )
        if request.url.path == "/api/proof/checkproof":
            return httpx.Response(200, json={"isValid": self.valid})
        return httpx.Response(404)

    def calls(self, path: str) -> int:
        return sum(1 for p, _ in self.requests if p == path)


@pytest.fixture
def prover_stub() -> ProverStub:
    return ProverStub()


@pytest_asyncio.fixture
async def prover(prover_stub: ProverStub) -> AsyncGenerator[CommitmentClient, None]:
    """Commitment client wired to the in-process prover stub."""
    async with CommitmentClient(
        base_url="http://prover.test",
        transport=httpx.MockTransport(prover_stub),
    ) as client:
        yield client

