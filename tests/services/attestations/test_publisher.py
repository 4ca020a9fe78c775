"""
Tests for attestation publishing, lookup and deletion on the mock ledger.
"""

import asyncio
import json

import pytest

from shared.blockchain.did import format_did
from shared.blockchain.eas import AttestationRecord
from shared.blockchain.mock import MockAttestationLedger, MockBundlerClient, MockChainClient
from shared.blockchain.signer import LocalAccountSigner
from shared.config.settings import Settings
from shared.errors import DelegationChainError, ExternalServiceError, MissingContextError

from services.accounts import (
    ImplementationKind,
    SmartAccount,
    SmartAccountProvisioner,
    SponsoredExecutor,
)
from services.attestations import (
    AttestationPublisher,
    IndivAttestation,
    OrgAttestation,
    schema_by_uid,
)
from services.attestations import schemas
from services.attestations.schemas import ORG
from services.delegation import DelegationChain, create_delegation

from tests.conftest import PROOF_DOCUMENT


CHAIN_ID = 10


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
def publisher(
    executor: SponsoredExecutor, mock_ledger: MockAttestationLedger, test_settings: Settings
) -> AttestationPublisher:
    return AttestationPublisher(
        executor, mock_ledger, eas_address=mock_ledger.address, config=test_settings
    )


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
def delegation_chain(
    org_account: SmartAccount,
    indiv_account: SmartAccount,
    issuer_account: SmartAccount,
    org_signer: LocalAccountSigner,
    indiv_signer: LocalAccountSigner,
) -> DelegationChain:
    root = create_delegation(org_signer, org_account.address, indiv_account.address)
    child = create_delegation(
        indiv_signer, indiv_account.address, issuer_account.address, parent=root
    )
    return DelegationChain((root, child))


@pytest.fixture
def org_did(org_account: SmartAccount) -> str:
    return format_did(CHAIN_ID, org_account.address)


def org_attestation(attester: str, name: str = "Acme Inc.", **overrides) -> OrgAttestation:
    fields = dict(
        attester=attester,
        entity_id="org(org)",
        vccomm="987654321",
        vcsig="0x" + "ab" * 65,
        vciss="did:pkh:eip155:10:0x3333333333333333333333333333333333333333",
        proof=json.dumps(PROOF_DOCUMENT),
        name=name,
    )
    fields.update(overrides)
    return OrgAttestation(**fields)


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_then_republish(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        mock_bundler: MockBundlerClient,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_account: SmartAccount,
        org_did: str,
    ) -> None:
        first = await publisher.publish(
            org_attestation(org_did), None, delegation_chain, issuer_account
        )
        operations = len(mock_bundler.operations)
        second = await publisher.publish(
            org_attestation(org_did, name="ACME INC."), None, delegation_chain, issuer_account
        )

        assert first.is_ok and first.value.created
        assert first.value.user_op_hash is not None
        assert second.is_ok and not second.value.created
        assert second.value.uid == first.value.uid
        assert len(mock_bundler.operations) == operations

        (record,) = mock_ledger.records
        assert record.uid == first.value.uid
        assert record.attester == org_account.address
        assert record.recipient == org_account.address
        assert mock_bundler.operations[-1].sender == issuer_account.address

    @pytest.mark.asyncio
    async def test_other_display_name_is_a_new_attestation(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(org_attestation(org_did), None, delegation_chain, issuer_account)
        result = await publisher.publish(
            org_attestation(org_did, name="Acme Labs"), None, delegation_chain, issuer_account
        )

        assert result.value.created
        assert len(mock_ledger.records) == 2

    @pytest.mark.asyncio
    async def test_concurrent_publishes_create_one(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        results = await asyncio.gather(
            *(
                publisher.publish(
                    org_attestation(org_did), None, delegation_chain, issuer_account
                )
                for _ in range(3)
            )
        )

        assert sorted(r.value.created for r in results) == [False, False, True]
        assert len({r.value.uid for r in results}) == 1
        assert len(mock_ledger.records) == 1
        assert publisher._locks == {}

    @pytest.mark.asyncio
    async def test_paying_account_is_recipient(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        indiv_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(
            org_attestation(org_did),
            None,
            delegation_chain,
            issuer_account,
            paying_account=indiv_account,
        )

        assert mock_ledger.records[0].recipient == indiv_account.address

    @pytest.mark.asyncio
    async def test_chain_for_another_root(
        self,
        publisher: AttestationPublisher,
        mock_bundler: MockBundlerClient,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        indiv_account: SmartAccount,
    ) -> None:
        attester = format_did(CHAIN_ID, indiv_account.address)

        result = await publisher.publish(
            org_attestation(attester), None, delegation_chain, issuer_account
        )

        assert isinstance(result.error, DelegationChainError)
        assert mock_bundler.operations == []

    @pytest.mark.asyncio
    async def test_chain_for_another_executor(
        self,
        publisher: AttestationPublisher,
        delegation_chain: DelegationChain,
        indiv_account: SmartAccount,
        org_did: str,
    ) -> None:
        result = await publisher.publish(
            org_attestation(org_did), None, delegation_chain, indiv_account
        )

        assert isinstance(result.error, DelegationChainError)

    @pytest.mark.asyncio
    async def test_missing_fields(
        self,
        publisher: AttestationPublisher,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        result = await publisher.publish(
            org_attestation(org_did, vccomm="", name=""), None, delegation_chain, issuer_account
        )

        assert isinstance(result.error, MissingContextError)
        assert result.error.fields == ("vccomm", "name")

    @pytest.mark.asyncio
    async def test_malformed_attester(
        self,
        publisher: AttestationPublisher,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
    ) -> None:
        result = await publisher.publish(
            org_attestation("did:web:acme.com"), None, delegation_chain, issuer_account
        )

        assert isinstance(result.error, MissingContextError)
        assert result.error.fields == ("attester",)


class TestLookup:
    @pytest.mark.asyncio
    async def test_find_and_load(
        self,
        publisher: AttestationPublisher,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        published = (
            await publisher.publish(
                org_attestation(org_did), None, delegation_chain, issuer_account
            )
        ).unwrap()

        found = await publisher.find_attestation(org_did, ORG.uid, "ORG(org)")
        loaded = await publisher.load_attestations([org_did])

        assert isinstance(found, OrgAttestation)
        assert found.uid == published.uid
        assert found.name == "Acme Inc."
        assert found.attester == org_did
        assert [a.uid for a in loaded] == [published.uid]
        assert await publisher.find_attestation(org_did, ORG.uid, "linkedin") is None

    @pytest.mark.asyncio
    async def test_undecodable_record_is_skipped(
        self, executor: SponsoredExecutor, org_did: str, org_account: SmartAccount
    ) -> None:
        class StubIndex:
            async def get_attestations(
                self, attester: str, schema_uid: str
            ) -> list[AttestationRecord]:
                return [
                    AttestationRecord(
                        uid="0x" + "01" * 32,
                        schema_uid=schema_uid,
                        attester=org_account.address,
                        data="0x1234",
                    )
                ]

        publisher = AttestationPublisher(executor, StubIndex())

        assert await publisher.find_attestation(org_did, ORG.uid, "org(org)") is None
        assert await publisher.load_attestations([org_did]) == []

    def test_unknown_schema(self) -> None:
        with pytest.raises(KeyError):
            schema_by_uid("0x" + "00" * 32)


class TestDelete:
    @pytest.mark.asyncio
    async def test_results_per_item(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(org_attestation(org_did), None, delegation_chain, issuer_account)
        existing = await publisher.find_attestation(org_did, ORG.uid, "org(org)")
        unpublished = IndivAttestation(attester=org_did, entity_id="linkedin", name="Jane")

        results = await publisher.delete_attestations(
            [unpublished, existing], None, delegation_chain, issuer_account
        )

        assert [r.ok for r in results] == [False, True]
        assert results[0].uid is None
        assert results[1].uid == existing.uid
        assert mock_ledger.records[0].revoked
        assert await publisher.find_attestation(org_did, ORG.uid, "org(org)") is None

    @pytest.mark.asyncio
    async def test_second_delete_reverts(
        self,
        publisher: AttestationPublisher,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(org_attestation(org_did), None, delegation_chain, issuer_account)
        existing = await publisher.find_attestation(org_did, ORG.uid, "org(org)")

        await publisher.delete_attestations([existing], None, delegation_chain, issuer_account)
        (result,) = await publisher.delete_attestations(
            [existing], None, delegation_chain, issuer_account
        )

        assert not result.ok
        assert result.error == "reverted"

    @pytest.mark.asyncio
    async def test_malformed_uid_does_not_block_the_rest(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(org_attestation(org_did), None, delegation_chain, issuer_account)
        existing = await publisher.find_attestation(org_did, ORG.uid, "org(org)")
        oversized = existing.model_copy(update={"uid": "0x" + "ab" * 33})

        results = await publisher.delete_attestations(
            [oversized, existing], None, delegation_chain, issuer_account
        )

        assert [r.ok for r in results] == [False, True]
        assert "32 bytes" in results[0].error
        assert mock_ledger.records[0].revoked

    @pytest.mark.asyncio
    async def test_chain_is_checked_before_submitting(
        self,
        publisher: AttestationPublisher,
        mock_bundler: MockBundlerClient,
        mock_ledger: MockAttestationLedger,
        delegation_chain: DelegationChain,
        indiv_account: SmartAccount,
        issuer_account: SmartAccount,
        org_did: str,
    ) -> None:
        await publisher.publish(org_attestation(org_did), None, delegation_chain, issuer_account)
        existing = await publisher.find_attestation(org_did, ORG.uid, "org(org)")
        foreign = existing.model_copy(
            update={"attester": format_did(CHAIN_ID, indiv_account.address)}
        )
        submitted = len(mock_bundler.operations)

        wrong_executor = await publisher.delete_attestations(
            [existing], None, delegation_chain, indiv_account
        )
        wrong_root = await publisher.delete_attestations(
            [foreign], None, delegation_chain, issuer_account
        )

        assert not wrong_executor[0].ok
        assert "not executing account" in wrong_executor[0].error
        assert not wrong_root[0].ok
        assert "does not match" in wrong_root[0].error
        assert len(mock_bundler.operations) == submitted
        assert not mock_ledger.records[0].revoked


class TestRevokeAttestation:
    @pytest.mark.asyncio
    async def test_add_and_get(
        self,
        publisher: AttestationPublisher,
        mock_ledger: MockAttestationLedger,
        issuer_account: SmartAccount,
    ) -> None:
        issuer_did = format_did(CHAIN_ID, issuer_account.address)

        result = await publisher.add_revoke_attestation("987654321", "{}", issuer_account)
        revoked = await publisher.get_revoke_attestation(issuer_did, "987654321")

        assert result.is_ok
        assert revoked is not None
        assert revoked.uid == result.value
        assert revoked.proof == "{}"
        assert revoked.issuedate > 0
        assert mock_ledger.records[0].recipient == issuer_account.address
        assert await publisher.get_revoke_attestation(issuer_did, "1") is None

    @pytest.mark.asyncio
    async def test_missing_proof(
        self, publisher: AttestationPublisher, issuer_account: SmartAccount
    ) -> None:
        result = await publisher.add_revoke_attestation("987654321", "", issuer_account)

        assert isinstance(result.error, MissingContextError)

    @pytest.mark.asyncio
    async def test_undecodable_revocation_is_skipped(
        self, executor: SponsoredExecutor, issuer_account: SmartAccount
    ) -> None:
        valid = schemas.REVOKE.encoder.encode(
            {"vccomm": "987654321", "proof": "{}", "issuedate": 1_000}
        )

        class StubIndex:
            async def get_attestations(
                self, attester: str, schema_uid: str
            ) -> list[AttestationRecord]:
                return [
                    AttestationRecord(
                        uid="0x" + "01" * 32,
                        schema_uid=schema_uid,
                        attester=attester,
                        data="0x1234",
                    ),
                    AttestationRecord(
                        uid="0x" + "02" * 32,
                        schema_uid=schema_uid,
                        attester=attester,
                        data="0x" + valid.hex(),
                    ),
                ]

        publisher = AttestationPublisher(executor, StubIndex())
        issuer_did = format_did(CHAIN_ID, issuer_account.address)

        revoked = await publisher.get_revoke_attestation(issuer_did, "987654321")

        assert revoked is not None
        assert revoked.uid == "0x" + "02" * 32
        assert revoked.issuedate == 1_000

    @pytest.mark.asyncio
    async def test_ledger_without_attestation_service(
        self,
        executor: SponsoredExecutor,
        mock_ledger: MockAttestationLedger,
        issuer_account: SmartAccount,
    ) -> None:
        # nothing handles calls at this address, so no Attested event
        publisher = AttestationPublisher(
            executor, mock_ledger, eas_address="0x9000000000000000000000000000000000000009"
        )

        result = await publisher.add_revoke_attestation("987654321", "{}", issuer_account)

        assert isinstance(result.error, ExternalServiceError)
