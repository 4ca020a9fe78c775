"""
Attestation Index
=================

Read side for published attestations. `EasGraphQLIndex` queries an EAS
GraphQL endpoint; `MockAttestationLedger` satisfies the same protocol in
mock mode.

Version: 0.1.0
"""

import json
from typing import Any, Protocol

import httpx

from shared.blockchain.abi import ZERO_ADDRESS
from shared.blockchain.eas import AttestationRecord
from shared.config import settings
from shared.errors import ExternalServiceError
from shared.logging import get_logger


logger = get_logger(__name__)


ATTESTATIONS_QUERY = """
query Attestations($attester: String!, $schemaId: String!) {
  attestations(
    where: {
      attester: { equals: $attester }
      schemaId: { equals: $schemaId }
      revoked: { equals: false }
    }
  ) {
    id
    schemaId
    attester
    recipient
    data
    revoked
    time
  }
}
"""


class AttestationIndex(Protocol):
    async def get_attestations(self, attester: str, schema_uid: str) -> list[AttestationRecord]:
        """Non-revoked attestations by `attester` for `schema_uid`."""
        ...


class EasGraphQLIndex:
    """EAS GraphQL index client."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url or settings.blockchain.attestation_graphql_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.blockchain.timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                self._url,
                json={"query": query, "variables": variables},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("attestation_index_failed", status_code=e.response.status_code)
            raise ExternalServiceError(
                "attestation_index",
                "query rejected",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("attestation_index_unreachable", error=str(e))
            raise ExternalServiceError("attestation_index", str(e)) from e
        except json.JSONDecodeError as e:
            raise ExternalServiceError("attestation_index", "invalid JSON response") from e

        if body.get("errors"):
            message = "; ".join(str(error.get("message", error)) for error in body["errors"])
            raise ExternalServiceError("attestation_index", message)
        return body.get("data") or {}

    async def get_attestations(self, attester: str, schema_uid: str) -> list[AttestationRecord]:
        data = await self._query(
            ATTESTATIONS_QUERY,
            {"attester": attester, "schemaId": schema_uid},
        )
        records = [
            AttestationRecord(
                uid=item["id"],
                schema_uid=item["schemaId"],
                attester=item.get("attester", attester),
                recipient=item.get("recipient") or ZERO_ADDRESS,
                data=item.get("data", "0x"),
                revoked=item.get("revoked", False),
                time=item.get("time", 0),
            )
            for item in data.get("attestations", [])
        ]
        logger.debug(
            "attestations_indexed",
            attester=attester,
            schema_uid=schema_uid,
            count=len(records),
        )
        return records
