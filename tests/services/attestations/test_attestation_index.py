"""
Tests for the GraphQL attestation index client.
"""

import json

import httpx
import pytest

from shared.blockchain.abi import ZERO_ADDRESS
from shared.errors import ExternalServiceError

from services.attestations import EasGraphQLIndex
from services.attestations.schemas import ORG


ATTESTER = "0x1000000000000000000000000000000000000001"
INDEX_URL = "http://index.test/graphql"


def index_with(responder) -> tuple[EasGraphQLIndex, list[dict]]:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return responder(request)

    return EasGraphQLIndex(url=INDEX_URL, transport=httpx.MockTransport(handler)), seen


class TestEasGraphQLIndex:
    @pytest.mark.asyncio
    async def test_maps_attestations(self) -> None:
        index, seen = index_with(
            lambda request: httpx.Response(
                200,
                json={
                    "data": {
                        "attestations": [
                            {
                                "id": "0x" + "01" * 32,
                                "schemaId": ORG.uid,
                                "attester": ATTESTER,
                                "recipient": None,
                                "data": "0xabcd",
                                "revoked": False,
                                "time": 1_700_000_000,
                            }
                        ]
                    }
                },
            )
        )

        records = await index.get_attestations(ATTESTER, ORG.uid)
        await index.aclose()

        (record,) = records
        assert record.uid == "0x" + "01" * 32
        assert record.recipient == ZERO_ADDRESS
        assert record.data == "0xabcd"
        assert seen[0]["variables"] == {"attester": ATTESTER, "schemaId": ORG.uid}
        assert "revoked: { equals: false }" in seen[0]["query"]

    @pytest.mark.asyncio
    async def test_empty_result(self) -> None:
        index, _ = index_with(lambda request: httpx.Response(200, json={"data": None}))

        assert await index.get_attestations(ATTESTER, ORG.uid) == []

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self) -> None:
        index, _ = index_with(
            lambda request: httpx.Response(200, json={"errors": [{"message": "bad schemaId"}]})
        )

        with pytest.raises(ExternalServiceError, match="bad schemaId"):
            await index.get_attestations(ATTESTER, ORG.uid)

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        index, _ = index_with(lambda request: httpx.Response(503))

        with pytest.raises(ExternalServiceError) as exc_info:
            await index.get_attestations(ATTESTER, ORG.uid)

        assert exc_info.value.status_code == 503
