# receipt_codec.py
"""Canonical (consensus) encoding of transaction receipts.

A receipt is RLP([status_or_post_state, cumulative_gas_used, logs_bloom, logs])
with each log as RLP([address, [topics...], data]). Typed receipts (EIP-2718)
are the type byte followed by that RLP payload; legacy receipts have no prefix.
Pre-Byzantium receipts carry a 32-byte post-state root instead of a status.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

import rlp
from rlp.exceptions import DecodingError
from eth_utils import keccak
from web3 import Web3

from .errors import MalformedInputError, ReceiptUnavailableError

BLOOM_LEN = 256
ADDRESS_LEN = 20
TOPIC_LEN = 32
MAX_TX_TYPE = 0x7F


@dataclass(frozen=True)
class LogEntry:
    address: bytes
    topics: Tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class TransactionReceipt:
    cumulative_gas_used: int
    logs_bloom: bytes
    logs: Tuple[LogEntry, ...]
    status: Optional[int] = None
    post_state: Optional[bytes] = None
    tx_type: int = 0
    # diagnostics only, never encoded
    transaction_hash: Optional[bytes] = None
    block_number: Optional[int] = None

    @property
    def is_typed(self) -> bool:
        return self.tx_type != 0


def _status_field(receipt: TransactionReceipt):
    if receipt.post_state is not None:
        if len(receipt.post_state) != 32:
            raise MalformedInputError("post-state root must be 32 bytes", value=receipt.post_state)
        return receipt.post_state
    if receipt.status is None:
        raise ReceiptUnavailableError("receipt has neither status nor post-state root",
                                      value=receipt.transaction_hash)
    if receipt.status not in (0, 1):
        raise MalformedInputError(f"receipt status must be 0 or 1, got {receipt.status}", value=receipt.status)
    return receipt.status


def canonicalize(receipt: TransactionReceipt) -> bytes:
    if len(receipt.logs_bloom) != BLOOM_LEN:
        raise MalformedInputError(f"logs bloom must be {BLOOM_LEN} bytes", value=receipt.logs_bloom)
    if not 0 <= receipt.tx_type <= MAX_TX_TYPE:
        raise MalformedInputError(f"invalid receipt type {receipt.tx_type}", value=receipt.tx_type)
    logs = [[log.address, list(log.topics), log.data] for log in receipt.logs]
    payload = rlp.encode([_status_field(receipt), receipt.cumulative_gas_used, receipt.logs_bloom, logs])
    if receipt.is_typed:
        return bytes([receipt.tx_type]) + payload
    return payload


def leaf_hash(receipt: TransactionReceipt) -> bytes:
    return keccak(canonicalize(receipt))


def _to_bytes(v, what: str, length: Optional[int] = None) -> bytes:
    try:
        if isinstance(v, (bytes, bytearray)):
            b = bytes(v)
        else:
            b = Web3.to_bytes(hexstr=v)
    except (ValueError, TypeError) as e:
        raise MalformedInputError(f"{what}: invalid hex {v!r}: {e}", value=v)
    if length is not None and len(b) != length:
        raise MalformedInputError(f"{what}: expected {length} bytes, got {len(b)}", value=v)
    return b


def _to_int(v, what: str) -> int:
    if isinstance(v, int):
        return v
    try:
        return Web3.to_int(hexstr=v)
    except (ValueError, TypeError) as e:
        raise MalformedInputError(f"{what}: invalid quantity {v!r}: {e}", value=v)


def _log_from_rpc(i: int, obj: dict) -> LogEntry:
    try:
        address, topics, data = obj["address"], obj["topics"], obj["data"]
    except KeyError as e:
        raise ReceiptUnavailableError(f"log {i} is missing field {e}", value=obj)
    return LogEntry(
        address=_to_bytes(address, f"logs[{i}].address", ADDRESS_LEN),
        topics=tuple(_to_bytes(t, f"logs[{i}].topics[{j}]", TOPIC_LEN) for j, t in enumerate(topics)),
        data=_to_bytes(data, f"logs[{i}].data"),
    )


def receipt_from_rpc(obj) -> TransactionReceipt:
    """Build a receipt from an ``eth_getTransactionReceipt`` result object."""
    if not obj:
        raise ReceiptUnavailableError("empty receipt object", value=obj)
    tx_hash = obj.get("transactionHash")
    tx_hash_b = _to_bytes(tx_hash, "transactionHash") if tx_hash is not None else None
    if obj.get("blockNumber") is None:
        raise ReceiptUnavailableError("receipt is pending (no block number)", value=tx_hash)
    missing = [k for k in ("cumulativeGasUsed", "logsBloom", "logs") if obj.get(k) is None]
    if obj.get("status") is None and obj.get("root") is None:
        missing.append("status")
    if missing:
        raise ReceiptUnavailableError(f"receipt is missing {', '.join(missing)}", value=tx_hash)

    post_state = None
    status = None
    if obj.get("status") is not None:
        status = _to_int(obj["status"], "status")
    else:
        post_state = _to_bytes(obj["root"], "root", 32)

    tx_type = obj.get("type")
    return TransactionReceipt(
        cumulative_gas_used=_to_int(obj["cumulativeGasUsed"], "cumulativeGasUsed"),
        logs_bloom=_to_bytes(obj["logsBloom"], "logsBloom", BLOOM_LEN),
        logs=tuple(_log_from_rpc(i, l) for i, l in enumerate(obj["logs"])),
        status=status,
        post_state=post_state,
        tx_type=_to_int(tx_type, "type") if tx_type is not None else 0,
        transaction_hash=tx_hash_b,
        block_number=_to_int(obj["blockNumber"], "blockNumber"),
    )


def decode_receipt(raw: bytes) -> TransactionReceipt:
    """Parse canonical receipt bytes (legacy or typed)."""
    if not raw:
        raise MalformedInputError("empty receipt", value=raw)
    if raw[0] <= MAX_TX_TYPE:
        rtype, payload = raw[0], raw[1:]
    else:
        rtype, payload = 0, raw
    try:
        items = rlp.decode(payload)
    except DecodingError as e:
        raise MalformedInputError(f"receipt is not valid RLP: {e}", value=raw)
    if not isinstance(items, list) or len(items) != 4:
        raise MalformedInputError("unexpected receipt field count", value=raw)

    status_or_root, cum_gas, bloom, logs_rlp = items
    if not all(isinstance(f, bytes) for f in (status_or_root, cum_gas, bloom)):
        raise MalformedInputError("receipt status, gas and bloom must be byte strings", value=raw)
    if not isinstance(logs_rlp, list):
        raise MalformedInputError("receipt logs must be a list", value=raw)
    status, post_state = None, None
    if len(status_or_root) == 32:
        post_state = status_or_root
    else:
        status = int.from_bytes(status_or_root, "big")

    logs = []
    try:
        for log_item in logs_rlp:
            addr_b, topics_rlp, data_b = log_item
            if not (isinstance(addr_b, bytes) and isinstance(data_b, bytes) and isinstance(topics_rlp, list)
                    and all(isinstance(t, bytes) for t in topics_rlp)):
                raise MalformedInputError("log fields have the wrong shape", value=raw)
            logs.append(LogEntry(address=addr_b, topics=tuple(topics_rlp), data=data_b))
    except (ValueError, TypeError) as e:
        raise MalformedInputError(f"malformed log entry: {e}", value=raw)

    return TransactionReceipt(
        cumulative_gas_used=int.from_bytes(cum_gas, "big"),
        logs_bloom=bloom,
        logs=tuple(logs),
        status=status,
        post_state=post_state,
        tx_type=rtype,
    )
