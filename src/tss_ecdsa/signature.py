import hashlib
from dataclasses import dataclass
from typing import Iterable, Optional

import gmpy2

from tss_crypto.common.ec import ECOperations, Point
from tss_ecdsa.errors import Reason, UnattributedFailure


class DataToSign:
    """
    Message digest to be signed.

    The digest is mapped to a scalar the standard ECDSA way: its leftmost
    bits, as many as the curve order has, reduced modulo the order.
    """

    def __init__(self, value: bytes):
        if not isinstance(value, bytes) or not value:
            raise ValueError("Digest must be a non-empty byte string")
        self.value = value

    @classmethod
    def digest(cls, data: bytes, hashfunc=hashlib.sha256) -> "DataToSign":
        return cls(hashfunc(data).digest())

    @classmethod
    def from_digest(cls, digest: bytes) -> "DataToSign":
        return cls(bytes(digest))

    def to_scalar(self, ec: ECOperations) -> int:
        e = int.from_bytes(self.value, "big")
        excess = len(self.value) * 8 - ec.n.bit_length()
        if excess > 0:
            e >>= excess
        return e % ec.n

    def __eq__(self, other) -> bool:
        if not isinstance(other, DataToSign):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"DataToSign({self.value.hex()})"


@dataclass(frozen=True)
class Signature:
    r: int
    s: int

    def normalize_s(self, ec: ECOperations) -> "Signature":
        """Returns the equivalent signature with s in the lower half of the group."""
        if self.s > ec.n // 2:
            return Signature(self.r, ec.n - self.s)
        return self

    def to_bytes(self, size: int = 32) -> bytes:
        """Fixed-width big-endian `r || s`."""
        return int(self.r).to_bytes(size, "big") + int(self.s).to_bytes(size, "big")

    @staticmethod
    def from_bytes(data: bytes) -> "Signature":
        if not data or len(data) % 2:
            raise ValueError("Signature encoding must have an even, non-zero length")
        half = len(data) // 2
        return Signature(
            int.from_bytes(data[:half], "big"), int.from_bytes(data[half:], "big")
        )

    def verify(self, public_key: Point, data: DataToSign) -> bool:
        ec = ECOperations.for_point(public_key)
        return ec.verify(public_key, data.to_scalar(ec), (self.r, self.s))


@dataclass(frozen=True)
class PartialSignature:
    """One signer's share `sigma = k * m + r * chi` of the final `s`."""

    party_index: int
    r: int
    sigma: int

    @staticmethod
    def combine(
        partials: Iterable["PartialSignature"],
        public_key: Point,
        data: DataToSign,
        ec: Optional[ECOperations] = None,
    ) -> Signature:
        """
        Sums the partial signatures and checks the result.

        Raises:
            UnattributedFailure: if the partials disagree on `r` or the summed
                signature does not verify under `public_key`.
        """
        ec = ec or ECOperations.for_point(public_key)
        partials = list(partials)
        if not partials:
            raise ValueError("No partial signatures to combine")

        rs = {p.r for p in partials}
        if len(rs) != 1:
            raise UnattributedFailure(
                Reason.SIGNATURE_VERIFICATION_FAILED,
                "partial signatures were made for different presignatures",
            )
        r = rs.pop()

        s = gmpy2.mpz(0)
        for p in partials:
            s += p.sigma
        s = int(s % ec.n)

        signature = Signature(r, s).normalize_s(ec)
        if s == 0 or not ec.verify(public_key, data.to_scalar(ec), (signature.r, signature.s)):
            raise UnattributedFailure(
                Reason.SIGNATURE_VERIFICATION_FAILED,
                "combined signature does not verify under the public key",
            )
        return signature
