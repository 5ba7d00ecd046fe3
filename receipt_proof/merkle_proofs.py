# merkle_proofs.py
"""Sorted-pair Keccak Merkle proofs.

Proof order is leaf-side first: proof[0] is combined with the leaf and the
last sibling yields the root. Each step hashes min(a, b) || max(a, b), so
no left/right bits are carried. This is the commitment scheme the verifier
is compatible with; it is not the receipts Merkle-Patricia trie.
"""
from pathlib import Path
from dataclasses import dataclass
from typing import List, Sequence, Tuple
import argparse
import json

from eth_utils import keccak

from .errors import MalformedInputError

HASH_LEN = 32
MAX_PROOF_DEPTH = 256


def _check_hash(h, what: str) -> bytes:
    if not isinstance(h, (bytes, bytearray)) or len(h) != HASH_LEN:
        raise MalformedInputError(f"{what} must be {HASH_LEN} bytes", value=h)
    return bytes(h)


def hash_pair(a: bytes, b: bytes) -> bytes:
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    computed_root: bytes
    trace: Tuple[bytes, ...]

    @property
    def proof_length(self) -> int:
        return len(self.trace)


def verify_with_trace(leaf: bytes, proof: Sequence[bytes], root: bytes) -> VerificationResult:
    """Fold ``proof`` into ``leaf`` and compare the result with ``root``.

    Every intermediate combination hash is returned in ``trace``.
    """
    cur = _check_hash(leaf, "leaf")
    root = _check_hash(root, "root")
    trace = []
    for i, sib in enumerate(proof):
        cur = hash_pair(cur, _check_hash(sib, f"proof[{i}]"))
        trace.append(cur)
    return VerificationResult(valid=(cur == root), computed_root=cur, trace=tuple(trace))


def verify(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    return verify_with_trace(leaf, proof, root).valid


class SortedPairTree:
    """Builds the tree that ``verify`` checks against.

    An odd node at the end of a level is promoted unchanged.
    """

    def __init__(self, leaves: Sequence[bytes]):
        self.leaves = [_check_hash(l, f"leaves[{i}]") for i, l in enumerate(leaves)]
        if not self.leaves:
            self.layers = []
        else:
            self.layers = [self.leaves]
            while len(self.layers[-1]) > 1:
                layer = self.layers[-1]
                nxt = []
                for i in range(0, len(layer), 2):
                    if i + 1 < len(layer):
                        nxt.append(hash_pair(layer[i], layer[i + 1]))
                    else:
                        nxt.append(layer[i])
                self.layers.append(nxt)

    def root(self) -> bytes:
        if not self.layers:
            raise ValueError("empty tree has no root")
        return self.layers[-1][0]

    def proof(self, idx: int) -> List[bytes]:
        if not 0 <= idx < len(self.leaves):
            raise IndexError(f"leaf index {idx} out of range")
        proof = []
        cur = idx
        for layer in self.layers[:-1]:
            pair = cur ^ 1
            # promoted nodes contribute no sibling at this level
            if pair < len(layer):
                proof.append(layer[pair])
            cur //= 2
        return proof


def compute_merkle(leaves_path: Path, out_dir: Path, sample_indices):
    from .proof_parser import format_proof, parse_hash

    lines = [ln.strip() for ln in leaves_path.read_text().splitlines() if ln.strip()]
    leaves = [parse_hash(ln, f"leaf line {i + 1}") for i, ln in enumerate(lines)]
    mt = SortedPairTree(leaves)
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / 'merkle_root.txt').write_text("0x" + mt.root().hex())

    proofs_dir = out_dir / 'inclusion_proofs'
    proofs_dir.mkdir(exist_ok=True)
    for idx in sample_indices:
        if 0 <= idx < len(leaves):
            p = {
                "index": idx,
                "leaf": "0x" + leaves[idx].hex(),
                "proof": format_proof(mt.proof(idx)),
            }
            (proofs_dir / f'sample_leaf_{idx}.json').write_text(json.dumps(p, indent=2))
    return "0x" + mt.root().hex()


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Build a sorted-pair tree over leaf hashes (one per line)")
    ap.add_argument('--leaves', required=True)
    ap.add_argument('--out', default='data/proofs')
    ap.add_argument('--samples', nargs='*', type=int, default=[0, 1, 2, 3, 4, 5, 6, 7, 8, 9])
    a = ap.parse_args()
    root = compute_merkle(Path(a.leaves), Path(a.out), a.samples)
    print("Merkle root:", root)
