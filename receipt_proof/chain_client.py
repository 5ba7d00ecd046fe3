# chain_client.py
"""Chain data access: the receipts root of a block and the receipt of a transaction.

The verification core only needs ``ChainDataClient``; ``RpcChainClient`` is the
JSON-RPC implementation used by the CLI. Fetches are coroutines, so a caller may
cancel them with ordinary asyncio task cancellation. Nothing is cached, so a
cancelled fetch can simply be issued again.
"""
import abc
import asyncio
import logging
import random
from typing import Union

from .errors import MalformedInputError, NetworkError, NotFoundError, RpcError
from .proof_parser import parse_hash
from .receipt_codec import TransactionReceipt, receipt_from_rpc
from .utils_eth import RpcPool

logger = logging.getLogger(__name__)

BLOCK_TAGS = ("latest", "earliest", "pending", "safe", "finalized")

BlockId = Union[int, str]


def block_param(block_id: BlockId) -> str:
    """Render a block number or tag as an ``eth_getBlockByNumber`` parameter."""
    if isinstance(block_id, bool):
        raise MalformedInputError(f"invalid block id {block_id!r}", value=block_id)
    if isinstance(block_id, int):
        if block_id < 0:
            raise MalformedInputError(f"block number must be >= 0, got {block_id}", value=block_id)
        return hex(block_id)
    s = str(block_id).strip().lower()
    if s in BLOCK_TAGS:
        return s
    try:
        n = int(s, 16) if s.startswith("0x") else int(s)
    except ValueError:
        raise MalformedInputError(f"invalid block id {block_id!r}", value=block_id)
    return block_param(n)


class ChainDataClient(abc.ABC):

    @abc.abstractmethod
    async def get_receipts_root(self, block_id: BlockId) -> bytes:
        """Return the 32-byte receiptsRoot of the block; NotFoundError if absent."""

    @abc.abstractmethod
    async def get_receipt(self, tx_hash: bytes) -> TransactionReceipt:
        """Return the mined receipt of the transaction; NotFoundError if absent."""


class RpcChainClient(ChainDataClient):

    def __init__(self, pool: RpcPool):
        self.pool = pool
        self._next_id = 0

    async def _call(self, method: str, params: list):
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        ok, resp = await self.pool.post(payload)
        if not ok:
            if isinstance(resp, dict) and "rpc_error" in resp:
                raise RpcError(f"{method} rejected by node: {resp['rpc_error']}", value=params)
            err = resp.get("error") if isinstance(resp, dict) else resp
            raise NetworkError(f"{method} failed: {err}", value=params)
        if not isinstance(resp, dict) or "result" not in resp:
            raise NetworkError(f"{method}: unexpected response {str(resp)[:200]}", value=params)
        return resp["result"]

    async def get_receipts_root(self, block_id: BlockId) -> bytes:
        param = block_param(block_id)
        block = await self._call("eth_getBlockByNumber", [param, False])
        if block is None:
            raise NotFoundError(f"block {block_id} not found", value=block_id)
        root = block.get("receiptsRoot")
        if root is None:
            raise NetworkError(f"block {block_id} has no receiptsRoot", value=block_id)
        return parse_hash(root, "receiptsRoot")

    async def get_receipt(self, tx_hash: bytes) -> TransactionReceipt:
        tx_hex = "0x" + bytes(tx_hash).hex()
        obj = await self._call("eth_getTransactionReceipt", [tx_hex])
        if obj is None:
            raise NotFoundError(f"receipt for {tx_hex} not found (unknown or not mined)", value=tx_hex)
        return receipt_from_rpc(obj)


class RetryingChainClient(ChainDataClient):
    """Retries NetworkError around another client.

    RpcError and every other error kind pass straight through.
    """

    def __init__(self, inner: ChainDataClient, attempts: int = 3, backoff: float = 0.5):
        self.inner = inner
        self.attempts = max(1, int(attempts))
        self.backoff = backoff

    async def _retry(self, what: str, fn, *args):
        for attempt in range(1, self.attempts + 1):
            try:
                return await fn(*args)
            except RpcError:
                raise
            except NetworkError as e:
                if attempt == self.attempts:
                    raise
                delay = min(10, self.backoff * (2 ** (attempt - 1))) + random.random() * self.backoff
                logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs",
                               what, attempt, self.attempts, e, delay)
                await asyncio.sleep(delay)

    async def get_receipts_root(self, block_id: BlockId) -> bytes:
        return await self._retry("get_receipts_root", self.inner.get_receipts_root, block_id)

    async def get_receipt(self, tx_hash: bytes) -> TransactionReceipt:
        return await self._retry("get_receipt", self.inner.get_receipt, tx_hash)
