"""
Unit tests for user operations and the JSON-RPC bundler client.
"""

import json

import httpx
import pytest

from shared.blockchain.bundler import (
    RpcBundlerClient,
    UserOperation,
    encode_nonce,
    parse_receipt,
    parse_sponsorship,
)
from shared.blockchain.mock import MockBundlerClient
from shared.blockchain.rpc import JsonRpcTransport
from shared.errors import ExternalServiceError


SENDER = "0x4444444444444444444444444444444444444444"
ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"


def rpc_transport(results: dict[str, object], seen: list[dict]) -> JsonRpcTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        reply: dict = {"jsonrpc": "2.0", "id": body["id"]}
        if body["method"] in results:
            reply["result"] = results[body["method"]]
        else:
            reply["error"] = {"code": -32601, "message": "nope"}
        return httpx.Response(200, json=reply)

    return JsonRpcTransport(
        "http://bundler.test",
        service="bundler",
        transport=httpx.MockTransport(handler),
    )


class TestUserOperation:
    def test_nonce_key_in_high_bits(self) -> None:
        assert encode_nonce(1) == 1 << 64
        assert encode_nonce(2, 3) == (2 << 64) | 3

    def test_hash_depends_on_chain_and_entry_point(self) -> None:
        op = UserOperation(sender=SENDER, nonce=encode_nonce(1), call_data=b"\x01")

        assert op.hash(ENTRY_POINT, 10) != op.hash(ENTRY_POINT, 11)
        assert op.hash(ENTRY_POINT, 10) == op.hash(ENTRY_POINT, 10)
        assert len(op.hash(ENTRY_POINT, 10)) == 32

    def test_to_rpc_omits_absent_factory_and_paymaster(self) -> None:
        payload = UserOperation(sender=SENDER, nonce=1).to_rpc()

        assert payload["nonce"] == "0x1"
        assert "factory" not in payload
        assert "paymaster" not in payload

    def test_to_rpc_includes_factory(self) -> None:
        op = UserOperation(sender=SENDER, nonce=1, factory=SENDER, factory_data=b"\xbe\xef")

        payload = op.to_rpc()

        assert payload["factoryData"] == "0xbeef"
        assert op.init_code == bytes.fromhex(SENDER[2:]) + b"\xbe\xef"


class TestParsers:
    def test_parse_sponsorship_maps_fields(self) -> None:
        fields = parse_sponsorship(
            {
                "paymaster": SENDER,
                "paymasterData": "0x01",
                "callGasLimit": "0x10",
                "preVerificationGas": "0x20",
                "unrelated": "ignored",
            }
        )

        assert fields == {
            "paymaster": SENDER,
            "paymaster_data": b"\x01",
            "call_gas_limit": 16,
            "pre_verification_gas": 32,
        }

    def test_parse_receipt(self) -> None:
        receipt = parse_receipt(
            {
                "userOpHash": "0xaa",
                "sender": SENDER,
                "success": True,
                "receipt": {"transactionHash": "0xbb"},
                "logs": [{"address": SENDER, "topics": ["0x01"], "data": "0x02"}],
            }
        )

        assert receipt.success
        assert receipt.transaction_hash == "0xbb"
        assert receipt.logs[0].topics == ["0x01"]


class TestRpcBundlerClient:
    @pytest.mark.asyncio
    async def test_gas_price_tiers(self) -> None:
        tier = {"maxFeePerGas": "0x64", "maxPriorityFeePerGas": "0xa"}
        seen: list[dict] = []
        transport = rpc_transport(
            {"pimlico_getUserOperationGasPrice": {"slow": tier, "standard": tier, "fast": tier}},
            seen,
        )
        client = RpcBundlerClient(bundler=transport, paymaster=transport)

        prices = await client.get_gas_price()

        assert prices.fast.max_fee_per_gas == 100
        assert prices.fast.max_priority_fee_per_gas == 10

    @pytest.mark.asyncio
    async def test_sponsor_sends_sponsored_context(self) -> None:
        seen: list[dict] = []
        transport = rpc_transport({"pm_sponsorUserOperation": {"paymaster": SENDER}}, seen)
        client = RpcBundlerClient(bundler=transport, paymaster=transport)

        fields = await client.sponsor(UserOperation(sender=SENDER, nonce=1))

        assert fields == {"paymaster": SENDER}
        assert seen[-1]["params"][2] == {"mode": "SPONSORED"}

    @pytest.mark.asyncio
    async def test_pending_receipt_is_none(self) -> None:
        transport = rpc_transport({"eth_getUserOperationReceipt": None}, [])
        client = RpcBundlerClient(bundler=transport, paymaster=transport)

        assert await client.get_receipt("0xaa") is None

    @pytest.mark.asyncio
    async def test_rpc_error_raises(self) -> None:
        transport = rpc_transport({}, [])
        client = RpcBundlerClient(bundler=transport, paymaster=transport)

        with pytest.raises(ExternalServiceError, match="nope"):
            await client.send(UserOperation(sender=SENDER, nonce=1))


class TestWaitForReceipt:
    @pytest.mark.asyncio
    async def test_times_out(self) -> None:
        bundler = MockBundlerClient()

        with pytest.raises(ExternalServiceError, match="No receipt"):
            await bundler.wait_for_receipt("0xdead", timeout=0, poll_interval=0)
