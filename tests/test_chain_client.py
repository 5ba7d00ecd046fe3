import asyncio

import pytest

from conftest import FakePool, TYPED_RPC_RECEIPT
from receipt_proof.chain_client import (
    ChainDataClient,
    RetryingChainClient,
    RpcChainClient,
    block_param,
)
from receipt_proof.errors import (
    ConfigError,
    MalformedInputError,
    NetworkError,
    NotFoundError,
    ReceiptUnavailableError,
    RpcError,
)
from receipt_proof.utils_eth import RpcPool

ROOT = "0x" + "56" * 32
TX = b"\x11" * 32


def _ok(result):
    return True, {"jsonrpc": "2.0", "id": 1, "result": result}


@pytest.mark.parametrize("block_id,expected", [
    (17000000, "0x1036640"),
    ("17000000", "0x1036640"),
    ("0x1036640", "0x1036640"),
    ("latest", "latest"),
    ("Finalized", "finalized"),
    (0, "0x0"),
])
def test_block_param(block_id, expected):
    assert block_param(block_id) == expected


@pytest.mark.parametrize("block_id", [-1, "abc", "0xzz", True])
def test_block_param_rejects(block_id):
    with pytest.raises(MalformedInputError):
        block_param(block_id)


def test_receipts_root_request_and_result():
    pool = FakePool([_ok({"number": "0x1036640", "receiptsRoot": ROOT})])
    client = RpcChainClient(pool)
    root = asyncio.run(client.get_receipts_root(17000000))
    assert root == b"\x56" * 32
    payload = pool.payloads[0]
    assert payload["method"] == "eth_getBlockByNumber"
    assert payload["params"] == ["0x1036640", False]


def test_missing_block_is_not_found():
    client = RpcChainClient(FakePool([_ok(None)]))
    with pytest.raises(NotFoundError):
        asyncio.run(client.get_receipts_root(99999999))


def test_receipt_request_and_result():
    pool = FakePool([_ok(TYPED_RPC_RECEIPT)])
    client = RpcChainClient(pool)
    receipt = asyncio.run(client.get_receipt(TX))
    assert receipt.tx_type == 2
    assert pool.payloads[0]["method"] == "eth_getTransactionReceipt"
    assert pool.payloads[0]["params"] == ["0x" + "11" * 32]


def test_unmined_receipt_is_not_found():
    client = RpcChainClient(FakePool([_ok(None)]))
    with pytest.raises(NotFoundError):
        asyncio.run(client.get_receipt(TX))


def test_pending_receipt_is_unavailable():
    client = RpcChainClient(FakePool([_ok(dict(TYPED_RPC_RECEIPT, blockNumber=None))]))
    with pytest.raises(ReceiptUnavailableError):
        asyncio.run(client.get_receipt(TX))


def test_transport_failure_is_network_error():
    client = RpcChainClient(FakePool([(False, {"error": "http://node: timeout"})]))
    with pytest.raises(NetworkError) as exc:
        asyncio.run(client.get_receipt(TX))
    assert "timeout" in str(exc.value)


class FlakyClient(ChainDataClient):
    def __init__(self, failures, exc=NetworkError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def get_receipts_root(self, block_id):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("boom")
        return b"\x01" * 32

    async def get_receipt(self, tx_hash):
        raise NotImplementedError


def test_retrying_client_retries_network_errors():
    inner = FlakyClient(failures=2)
    client = RetryingChainClient(inner, attempts=3, backoff=0)
    assert asyncio.run(client.get_receipts_root(1)) == b"\x01" * 32
    assert inner.calls == 3


def test_retrying_client_gives_up():
    inner = FlakyClient(failures=5)
    client = RetryingChainClient(inner, attempts=2, backoff=0)
    with pytest.raises(NetworkError):
        asyncio.run(client.get_receipts_root(1))
    assert inner.calls == 2


def test_retrying_client_does_not_retry_not_found():
    inner = FlakyClient(failures=5, exc=NotFoundError)
    client = RetryingChainClient(inner, attempts=3, backoff=0)
    with pytest.raises(NotFoundError):
        asyncio.run(client.get_receipts_root(1))
    assert inner.calls == 1


def test_cancelled_fetch_can_be_reissued():
    class SlowPool(FakePool):
        async def post(self, payload, timeout=None):
            if not self.payloads:
                self.payloads.append(payload)
                await asyncio.sleep(10)
            return await super().post(payload, timeout)

    pool = SlowPool([_ok({"receiptsRoot": ROOT})])
    client = RpcChainClient(pool)

    async def scenario():
        task = asyncio.ensure_future(client.get_receipts_root(5))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return await client.get_receipts_root(5)

    assert asyncio.run(scenario()) == b"\x56" * 32


def test_pool_requires_endpoint(monkeypatch):
    monkeypatch.delenv("ETH_RPC_URL", raising=False)
    with pytest.raises(ConfigError):
        RpcPool()


def test_pool_reads_env(monkeypatch):
    monkeypatch.setenv("ETH_RPC_URL", "http://a:8545, http://b:8545")
    pool = RpcPool()
    assert pool.urls == ["http://a:8545", "http://b:8545"]


def test_node_rpc_error_is_not_retried():
    rpc_err = (False, {"error": "rpc_error http://node: invalid params",
                       "rpc_error": {"code": -32602, "message": "invalid params"}})
    pool = FakePool([rpc_err] * 3)
    client = RetryingChainClient(RpcChainClient(pool), attempts=3, backoff=0)
    with pytest.raises(RpcError) as exc:
        asyncio.run(client.get_receipt(TX))
    assert len(pool.payloads) == 1
    assert "invalid params" in str(exc.value)
    assert isinstance(exc.value, NetworkError)
