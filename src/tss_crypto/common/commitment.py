"""
Hash commitment with a fixed-length random decommitment nonce.

Committed values are integers; the binding tag separates the commitments of
different protocols and parties.
"""

from typing import Tuple
import hmac
import secrets

from tss_crypto.zkp.hash import sha512_256i_tagged

NONCE_LENGTH = 32


def commit(tag: bytes, *values: int) -> Tuple[int, bytes]:
    nonce = secrets.token_bytes(NONCE_LENGTH)
    return commit_with_nonce(tag, nonce, *values), nonce


def commit_with_nonce(tag: bytes, nonce: bytes, *values: int) -> int:
    if len(nonce) != NONCE_LENGTH:
        raise ValueError(f"Decommitment nonce must be {NONCE_LENGTH} bytes")
    return sha512_256i_tagged(tag, int.from_bytes(nonce, "big"), len(values), *values)


def verify_commitment(tag: bytes, commitment: int, nonce: bytes, *values: int) -> bool:
    if len(nonce) != NONCE_LENGTH or not 0 <= commitment < 1 << 256:
        return False
    expected = commit_with_nonce(tag, nonce, *values)
    return hmac.compare_digest(
        expected.to_bytes(32, "big"), int(commitment).to_bytes(32, "big")
    )
