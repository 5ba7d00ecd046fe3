import pytest

from receipt_proof.chain_client import ChainDataClient, block_param
from receipt_proof.errors import NotFoundError
from receipt_proof.receipt_codec import receipt_from_rpc

# EIP-1559 receipt (type 0x2, one ERC-20 Transfer log) and its consensus encoding
TYPED_RAW_HEX = "0x02f901a70183077110b9010000000000000020000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000008000000000000000000000000000048001000000000400000000000000000000000000000000000000000000000000010000100000800000000000002000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000002000000000000000000000000000000000000000000000400000000000000000000000000000000000000000000000000000000000000000000000000f89df89b945dd5a987569d00026c7cd2abdcaf93306950fa5ef863a0ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3efa0000000000000000000000000f68139f92fd4b5abd800795f6b02bf400554faaca000000000000000000000000011e2cae0cb5a125ca696defdcbd2fbe01dccafeea0000000000000000000000000000000000000000000000000016345785d8a0000"
TYPED_BLOOM = "0x00000000000020000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000008000000000000000000000000000048001000000000400000000000000000000000000000000000000000000000000010000100000800000000000002000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000000002000000000000000000000000000000000000000000000400000000000000000000000000000000000000000000000000000000000000000000000000"
TYPED_RPC_RECEIPT = {
    "transactionHash": "0x" + "11" * 32,
    "blockNumber": "0x207f564",
    "type": "0x2",
    "status": "0x1",
    "cumulativeGasUsed": "0x77110",
    "logsBloom": TYPED_BLOOM,
    "logs": [
        {
            "address": "0x5dd5a987569d00026c7cd2abdcaf93306950fa5e",
            "topics": [
                "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef",
                "0x000000000000000000000000f68139f92fd4b5abd800795f6b02bf400554faac",
                "0x00000000000000000000000011e2cae0cb5a125ca696defdcbd2fbe01dccafee",
            ],
            "data": "0x000000000000000000000000000000000000000000000000016345785d8a0000",
            "logIndex": "0x0",
        }
    ],
}

# legacy receipt without logs: status 1, cumulative gas 0x41bd9, empty bloom
LEGACY_RAW_HEX = "0xf901090183041bd9b90100" + "00" * 256 + "c0"
LEGACY_RPC_RECEIPT = {
    "transactionHash": "0x" + "22" * 32,
    "blockNumber": "0x207f564",
    "type": "0x0",
    "status": "0x1",
    "cumulativeGasUsed": "0x41bd9",
    "logsBloom": "0x" + "00" * 256,
    "logs": [],
}


class FakeChainClient(ChainDataClient):
    """In-memory chain: {block_id: root} and {tx_hash: rpc receipt dict}."""

    def __init__(self, roots=None, receipts=None):
        self.roots = {block_param(k): v for k, v in (roots or {}).items()}
        self.receipts = dict(receipts or {})
        self.calls = []

    async def get_receipts_root(self, block_id):
        self.calls.append(("root", block_id))
        key = block_param(block_id)
        if key not in self.roots:
            raise NotFoundError(f"block {block_id} not found", value=block_id)
        return self.roots[key]

    async def get_receipt(self, tx_hash):
        self.calls.append(("receipt", tx_hash))
        if tx_hash not in self.receipts:
            raise NotFoundError("receipt not found", value=tx_hash)
        return receipt_from_rpc(self.receipts[tx_hash])


class FakePool:
    """Stands in for RpcPool: replays queued (ok, data) answers and records payloads."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.payloads = []

    async def post(self, payload, timeout=None):
        self.payloads.append(payload)
        return self.answers.pop(0)


@pytest.fixture
def typed_receipt():
    return receipt_from_rpc(TYPED_RPC_RECEIPT)


@pytest.fixture
def legacy_receipt():
    return receipt_from_rpc(LEGACY_RPC_RECEIPT)
