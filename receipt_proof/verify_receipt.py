#!/usr/bin/env python3
# verify_receipt.py
"""Check that a transaction's receipt is committed to by a block's receipts root.

Run as module from repo root:
python -m receipt_proof.verify_receipt --block 17000000 --tx 0x... --proof 0x..,0x..

Exit code 0 means the check ran (PASS or FAIL); 1 is a chain/network problem,
2 is bad configuration or malformed input.
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .chain_client import BLOCK_TAGS, BlockId, ChainDataClient, RetryingChainClient, RpcChainClient, block_param
from .config import load_settings, setup_diagnostics
from .errors import (
    ConfigError,
    MalformedInputError,
    NetworkError,
    NotFoundError,
    ReceiptProofError,
    ReceiptUnavailableError,
    RpcError,
)
from .merkle_proofs import VerificationResult, verify_with_trace
from .proof_parser import parse_hash, parse_proof
from .receipt_codec import leaf_hash
from .report import build_report, load_signing_key, write_report
from .utils_eth import RpcPool

EXIT_OK = 0
EXIT_CHAIN = 1
EXIT_INPUT = 2

EXIT_CODES = {
    ConfigError: EXIT_INPUT,
    MalformedInputError: EXIT_INPUT,
    NetworkError: EXIT_CHAIN,
    NotFoundError: EXIT_CHAIN,
    ReceiptUnavailableError: EXIT_CHAIN,
    RpcError: EXIT_CHAIN,
}


@dataclass(frozen=True)
class Outcome:
    block_id: BlockId
    tx_hash: bytes
    leaf: bytes
    root: bytes
    result: VerificationResult

    @property
    def valid(self) -> bool:
        return self.result.valid


async def _fetch(client: ChainDataClient, block_id: BlockId, tx_hash: bytes):
    tasks = [
        asyncio.ensure_future(client.get_receipts_root(block_id)),
        asyncio.ensure_future(client.get_receipt(tx_hash)),
    ]
    try:
        root, receipt = await asyncio.gather(*tasks)
    except BaseException:
        for t in tasks:
            t.cancel()
        # collect the sibling's outcome so no exception goes unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return root, receipt


async def run_verification(client: ChainDataClient, block_id: BlockId, tx_hash: str,
                           proof_text: str, diag: logging.Logger) -> Outcome:
    # all local input is validated before anything touches the network
    param = block_param(block_id)
    tx = parse_hash(tx_hash, "transaction hash")
    proof = parse_proof(proof_text)
    diag.debug("proof parsed: %d siblings", len(proof))

    root, receipt = await _fetch(client, block_id, tx)
    diag.debug("receiptsRoot of block %s: 0x%s", block_id, root.hex())
    if param not in BLOCK_TAGS and receipt.block_number is not None and receipt.block_number != int(param, 16):
        diag.warning("transaction 0x%s was mined in block %d, not block %s; the proof will not match",
                     tx.hex(), receipt.block_number, block_id)

    leaf = leaf_hash(receipt)
    diag.debug("receipt type=%d logs=%d leaf=0x%s", receipt.tx_type, len(receipt.logs), leaf.hex())

    result = verify_with_trace(leaf, proof, root)
    for i, h in enumerate(result.trace):
        diag.debug("step %d: 0x%s", i, h.hex())
    diag.info("proof length %d, computed root 0x%s, expected 0x%s",
              result.proof_length, result.computed_root.hex(), root.hex())
    return Outcome(block_id=block_id, tx_hash=tx, leaf=leaf, root=root, result=result)


async def _run_with_pool(settings, block_id, tx_hash, proof_text, diag) -> Outcome:
    async with RpcPool(urls=settings.rpc_urls, timeout=settings.timeout, max_retries=1) as pool:
        client = RetryingChainClient(RpcChainClient(pool), attempts=settings.retries)
        return await run_verification(client, block_id, tx_hash, proof_text, diag)


def _read_proof(a) -> str:
    if a.proof_file:
        try:
            return Path(a.proof_file).read_text()
        except OSError as e:
            raise ConfigError(f"cannot read proof file {a.proof_file}: {e}", value=a.proof_file)
    return a.proof


def _write_report(report: dict, path: str, signing_key) -> Path:
    try:
        return write_report(report, Path(path), signing_key)
    except OSError as e:
        raise ConfigError(f"cannot write report {path}: {e}", value=path)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Verify a receipt inclusion proof against a block's receiptsRoot")
    ap.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint(s), comma-separated (default: $ETH_RPC_URL)")
    ap.add_argument("--block", required=True, help="block number (decimal or 0x-hex) or tag")
    ap.add_argument("--tx", required=True, help="transaction hash")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--proof", help="sibling hashes, leaf side first, comma or space separated")
    src.add_argument("--proof-file", help="file holding the proof text")
    ap.add_argument("--timeout", type=float, default=None)
    ap.add_argument("--retries", type=int, default=None)
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--report", default="", help="write a signed JSON report here")
    ap.add_argument("--sign-key", default="", help="Ed25519 PEM private key for the report")
    return ap


def main(argv: Optional[list] = None) -> int:
    a = build_parser().parse_args(argv)
    try:
        settings = load_settings(rpc_url=a.rpc_url, timeout=a.timeout, retries=a.retries, log_level=a.log_level)
        diag = setup_diagnostics(settings.log_level)
        signing_key = load_signing_key(a.sign_key) if a.sign_key else None
        outcome = asyncio.run(_run_with_pool(settings, a.block, a.tx, _read_proof(a), diag))
    except ReceiptProofError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CODES.get(type(e), EXIT_CHAIN)

    verdict = "PASS" if outcome.valid else "FAIL"
    print(f"{verdict}: receipt of tx 0x{outcome.tx_hash.hex()} in block {outcome.block_id}")
    print("computed_root:", "0x" + outcome.result.computed_root.hex())
    print("expected_root:", "0x" + outcome.root.hex())

    if a.report:
        report = build_report(outcome.block_id, outcome.tx_hash, outcome.leaf, outcome.root, outcome.result)
        try:
            path = _write_report(report, a.report, signing_key)
        except ConfigError as e:
            print(f"error: {e}", file=sys.stderr)
            return EXIT_INPUT
        print("Wrote report to", path)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
