"""
Attestation Publisher
=====================

Publishes claim attestations through a delegation redemption, so the
attestation is recorded with the root account as attester while the
executing account pays nothing (sponsored) and holds no root key.

At most one attestation exists per (attester, schema, entity id, display
name): publishes for the same key are serialized and an existing
attestation short-circuits creation.

Version: 0.1.0
"""

import asyncio
import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager

from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes

from shared.blockchain.abi import Execution, hex_bytes
from shared.blockchain.bundler import UserOperationReceipt
from shared.blockchain.did import address_from_did, parse_did
from shared.blockchain.eas import ATTESTED_TOPIC, encode_attest, encode_revoke
from shared.blockchain.signer import Signer
from shared.config import Settings, settings as default_settings
from shared.errors import (
    DelegationChainError,
    Err,
    ExternalServiceError,
    MissingContextError,
    Ok,
    OrgTrustError,
    Result,
)
from shared.logging import get_logger

from services.accounts.executor import SponsoredExecutor
from services.accounts.provisioner import SmartAccount
from services.attestations import schemas
from services.attestations.index import AttestationIndex
from services.attestations.models import (
    Attestation,
    DeletionResult,
    PublishOutcome,
    RevokeAttestation,
    attestation_type,
)
from services.delegation.chain import DelegationChain


logger = get_logger(__name__)


def attested_uid(receipt: UserOperationReceipt, eas_address: str) -> str | None:
    """UID from the first `Attested` event emitted by `eas_address`."""
    for log in receipt.logs:
        if (
            log.address.lower() == eas_address.lower()
            and log.topics
            and log.topics[0].lower() == ATTESTED_TOPIC
        ):
            return hex_bytes(to_bytes(hexstr=log.data)[:32])
    return None


class AttestationPublisher:
    """
    Publish, look up and delete attestations.

    Example:
        >>> publisher = AttestationPublisher(executor, index)
        >>> result = await publisher.publish(attestation, signer, chain, issuer_account)
        >>> if result.is_ok:
        ...     print(result.value.uid)
    """

    def __init__(
        self,
        executor: SponsoredExecutor,
        index: AttestationIndex,
        eas_address: str | None = None,
        config: Settings | None = None,
    ) -> None:
        self._executor = executor
        self._index = index
        self._settings = config or default_settings
        self.eas_address = eas_address or self._settings.blockchain.eas_contract_address
        self._locks: dict[tuple[str, ...], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, ...], int] = {}

    @asynccontextmanager
    async def _serialized(self, key: tuple[str, ...]) -> AsyncIterator[None]:
        """Hold the lock for `key`; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    # =========================================================================
    # Lookup
    # =========================================================================

    async def find_attestation(
        self,
        attester_did: str,
        schema_uid: str,
        entity_id: str,
        display_name: str | None = None,
    ) -> Attestation | None:
        """
        Existing attestation for `(attester, schema, entity_id, display_name)`.

        Entity ids and display names compare case-insensitively; with no
        `display_name` any attestation for the entity matches.
        """
        chain_id, attester = parse_did(attester_did)
        model = attestation_type(schema_uid)
        display_field = model.schema_def.display_field

        for record in await self._index.get_attestations(attester, schema_uid):
            try:
                values = model.schema_def.encoder.decode(record.data)
            except (DecodingError, ValueError) as e:
                logger.warning("attestation_decode_failed", uid=record.uid, error=str(e))
                continue
            if str(values["entityid"]).lower() != entity_id.lower():
                continue
            if (
                display_name is not None
                and display_field is not None
                and str(values[display_field]).lower() != display_name.lower()
            ):
                continue
            return model.from_record(record, chain_id)
        return None

    async def load_attestations(self, attester_dids: Iterable[str]) -> list[Attestation]:
        """Every non-revoked claim attestation published by `attester_dids`."""
        loaded: list[Attestation] = []
        for did in attester_dids:
            chain_id, attester = parse_did(did)
            for schema in schemas.CLAIM_SCHEMAS:
                model = attestation_type(schema.uid)
                for record in await self._index.get_attestations(attester, schema.uid):
                    try:
                        loaded.append(model.from_record(record, chain_id))
                    except (DecodingError, ValueError) as e:
                        # malformed data under a registered schema
                        logger.warning("attestation_decode_failed", uid=record.uid, error=str(e))
        logger.debug("attestations_loaded", count=len(loaded))
        return loaded

    # =========================================================================
    # Publish
    # =========================================================================

    async def publish(
        self,
        attestation: Attestation,
        signer: Signer | None,
        delegation_chain: DelegationChain,
        executing_account: SmartAccount,
        paying_account: SmartAccount | None = None,
    ) -> Result[PublishOutcome]:
        """
        Publish `attestation` unless an equivalent one already exists.

        Args:
            attestation: Claim attestation; `attester` names the root account
            signer: Key for the executing account's user operation
            delegation_chain: Chain from the root account to `executing_account`
            executing_account: Account that redeems the chain
            paying_account: Recipient of the attestation (defaults to the root)

        Returns:
            Ok(PublishOutcome) with `created=False` for an existing
            attestation, or Err on missing fields, an invalid chain or a
            failed submission
        """
        missing = attestation.missing_fields()
        if missing:
            logger.warning("attestation_incomplete", missing=missing)
            return Err(MissingContextError(missing))

        try:
            root = address_from_did(attestation.attester)
            delegation_chain.validate(root, executing_account.counterfactual_address)
        except ValueError:
            return Err(MissingContextError(["attester"]))
        except DelegationChainError as e:
            logger.error("delegation_chain_invalid", attester=attestation.attester, error=str(e))
            return Err(e)

        schema = attestation.schema_def
        key = (
            root.lower(),
            schema.uid,
            attestation.entity_id.lower(),
            (attestation.display_name or "").lower(),
        )

        async with self._serialized(key):
            try:
                existing = await self.find_attestation(
                    attestation.attester,
                    schema.uid,
                    attestation.entity_id,
                    attestation.display_name,
                )
            except ExternalServiceError as e:
                logger.error("attestation_lookup_failed", error=str(e))
                return Err(e)

            if existing is not None and existing.uid is not None:
                logger.info(
                    "attestation_exists",
                    uid=existing.uid,
                    schema=schema.name,
                    entity_id=attestation.entity_id,
                )
                return Ok(PublishOutcome(uid=existing.uid, created=False))

            recipient = paying_account.counterfactual_address if paying_account else root
            call = Execution(
                target=self.eas_address,
                call_data=encode_attest(schema.uid, recipient, attestation.encode()),
            )
            try:
                receipt = await self._executor.redeem(
                    delegation_chain, [call], executing_account, signer=signer
                )
            except OrgTrustError as e:
                logger.error("attestation_submission_failed", schema=schema.name, error=str(e))
                return Err(e)

            uid = attested_uid(receipt, self.eas_address) if receipt.success else None
            if uid is None:
                logger.error(
                    "attestation_not_created",
                    schema=schema.name,
                    op_hash=receipt.user_op_hash,
                )
                return Err(ExternalServiceError("attestation", "attestation not created"))

        logger.info(
            "attestation_published",
            uid=uid,
            schema=schema.name,
            attester=root,
            entity_id=attestation.entity_id,
        )
        return Ok(PublishOutcome(uid=uid, created=True, user_op_hash=receipt.user_op_hash))

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_attestations(
        self,
        attestations: Sequence[Attestation],
        signer: Signer | None,
        delegation_chain: DelegationChain,
        executing_account: SmartAccount,
    ) -> list[DeletionResult]:
        """
        Revoke each attestation in its own user operation.

        Each item is checked against the chain rooted at its attester
        before anything is submitted. A failure is recorded for that item
        and the rest still run.
        """
        results: list[DeletionResult] = []
        for attestation in attestations:
            if not attestation.uid:
                results.append(DeletionResult(uid=None, ok=False, error="attestation has no uid"))
                continue

            try:
                delegation_chain.validate(
                    address_from_did(attestation.attester),
                    executing_account.counterfactual_address,
                )
                call = Execution(
                    target=self.eas_address,
                    call_data=encode_revoke(
                        attestation.schema_uid or attestation.schema_def.uid, attestation.uid
                    ),
                )
                receipt = await self._executor.redeem(
                    delegation_chain, [call], executing_account, signer=signer
                )
            except (OrgTrustError, ValueError) as e:
                logger.error("attestation_delete_failed", uid=attestation.uid, error=str(e))
                results.append(DeletionResult(uid=attestation.uid, ok=False, error=str(e)))
                continue

            if not receipt.success:
                logger.error("attestation_delete_reverted", uid=attestation.uid)
                results.append(DeletionResult(uid=attestation.uid, ok=False, error="reverted"))
                continue

            logger.info("attestation_deleted", uid=attestation.uid)
            results.append(DeletionResult(uid=attestation.uid, ok=True))
        return results

    # =========================================================================
    # Revocation attestations
    # =========================================================================

    async def add_revoke_attestation(
        self,
        vccomm: str,
        proof: str,
        issuer_account: SmartAccount,
        signer: Signer | None = None,
    ) -> Result[str]:
        """
        Record that the credential committed to by `vccomm` is revoked.

        Sent directly by the issuer account, without delegation.
        """
        missing = [name for name, value in (("vccomm", vccomm), ("proof", proof)) if not value]
        if missing:
            return Err(MissingContextError(missing))

        data = schemas.REVOKE.encoder.encode(
            {"vccomm": vccomm, "proof": proof, "issuedate": int(time.time())}
        )
        call = Execution(
            target=self.eas_address,
            call_data=encode_attest(
                schemas.REVOKE.uid, issuer_account.counterfactual_address, data
            ),
        )
        try:
            receipt = await self._executor.execute(issuer_account, [call], signer=signer)
        except OrgTrustError as e:
            logger.error("revoke_attestation_failed", error=str(e))
            return Err(e)

        uid = attested_uid(receipt, self.eas_address) if receipt.success else None
        if uid is None:
            return Err(ExternalServiceError("attestation", "revocation not recorded"))

        logger.info("revoke_attestation_added", uid=uid, vccomm=vccomm)
        return Ok(uid)

    async def get_revoke_attestation(
        self,
        attester_did: str,
        vccomm: str,
    ) -> RevokeAttestation | None:
        """Revocation attestation for `vccomm` by `attester_did`, if any."""
        attester = address_from_did(attester_did)
        for record in await self._index.get_attestations(attester, schemas.REVOKE.uid):
            try:
                values = schemas.REVOKE.encoder.decode(record.data)
            except (DecodingError, ValueError) as e:
                logger.warning("attestation_decode_failed", uid=record.uid, error=str(e))
                continue
            if values["vccomm"] == vccomm:
                return RevokeAttestation(
                    uid=record.uid,
                    schema_uid=record.schema_uid,
                    vccomm=values["vccomm"],
                    proof=values["proof"],
                    issuedate=values["issuedate"],
                )
        return None
