# report.py
import json
import time
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .errors import ConfigError
from .merkle_proofs import VerificationResult


def build_report(block_id, tx_hash: bytes, leaf: bytes, root: bytes, result: VerificationResult) -> dict:
    return {
        "block": str(block_id),
        "transaction_hash": "0x" + tx_hash.hex(),
        "leaf": "0x" + leaf.hex(),
        "expected_root": "0x" + root.hex(),
        "computed_root": "0x" + result.computed_root.hex(),
        "proof_length": result.proof_length,
        "trace": ["0x" + h.hex() for h in result.trace],
        "valid": result.valid,
        "timestamp_utc": int(time.time()),
    }


def load_signing_key(path: str) -> Ed25519PrivateKey:
    try:
        sk = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    except (OSError, ValueError, TypeError) as e:
        raise ConfigError(f"cannot load signing key {path}: {e}", value=path)
    if not isinstance(sk, Ed25519PrivateKey):
        raise ConfigError(f"signing key {path} is not an Ed25519 key", value=path)
    return sk


def write_report(report: dict, out_path: Path, signing_key: Optional[Ed25519PrivateKey] = None) -> Path:
    """Write the report JSON plus a detached Ed25519 signature and the public key.

    Without a key an ephemeral one is generated; the private key is never written.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(report, indent=2))

    sk = signing_key or Ed25519PrivateKey.generate()
    pk = sk.public_key()
    (out_path.parent / 'ed25519_public.pem').write_bytes(
        pk.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
    )
    sig = sk.sign(out_path.read_bytes())
    out_path.with_name(out_path.name + '.sig').write_bytes(sig)
    return out_path


def check_report_signature(report_path: Path, public_key_path: Path) -> bool:
    report_path = Path(report_path)
    pk = serialization.load_pem_public_key(Path(public_key_path).read_bytes())
    if not isinstance(pk, Ed25519PublicKey):
        return False
    sig = report_path.with_name(report_path.name + '.sig').read_bytes()
    try:
        pk.verify(sig, report_path.read_bytes())
    except InvalidSignature:
        return False
    return True
