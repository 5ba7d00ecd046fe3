# proof_parser.py
import re
from typing import Sequence, Tuple

from .errors import MalformedInputError
from .merkle_proofs import HASH_LEN, MAX_PROOF_DEPTH

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_DELIMS = re.compile(r"[,\s]+")


def _strip0x(h: str) -> str:
    return h[2:] if h.startswith(("0x", "0X")) else h


def parse_hash(token: str, what: str = "hash") -> bytes:
    """Decode one 32-byte hex literal, with or without a 0x prefix."""
    if not isinstance(token, str):
        raise MalformedInputError(f"{what}: expected hex string, got {type(token).__name__}", value=token)
    h = _strip0x(token.strip())
    if not _HEX_RE.match(h):
        raise MalformedInputError(f"{what}: {token!r} is not valid hex", value=token)
    if len(h) != HASH_LEN * 2:
        raise MalformedInputError(
            f"{what}: {token!r} decodes to {len(h) / 2:g} bytes, expected {HASH_LEN}", value=token
        )
    return bytes.fromhex(h)


def parse_proof(text: str) -> Tuple[bytes, ...]:
    """Split a comma and/or whitespace separated list of hashes, order preserved.

    Rejects the whole proof on the first bad token; nothing partial is returned.
    """
    if text is None or not text.strip():
        raise MalformedInputError("proof is empty", value=text)
    stripped = text.strip()
    if re.search(r",\s*,", stripped) or stripped.startswith(",") or stripped.endswith(","):
        raise MalformedInputError("proof contains an empty token", value=text)
    tokens = _DELIMS.split(stripped)
    if len(tokens) > MAX_PROOF_DEPTH:
        raise MalformedInputError(
            f"proof has {len(tokens)} siblings, max is {MAX_PROOF_DEPTH}", value=len(tokens)
        )
    return tuple(parse_hash(t, f"proof token {i}") for i, t in enumerate(tokens))


def format_proof(proof: Sequence[bytes]) -> str:
    return ",".join("0x" + bytes(p).hex() for p in proof)
