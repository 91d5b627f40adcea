"""
Ring-Pedersen parameter proof (CGGMP21 figure 17).

This proof demonstrates knowledge of a discrete logarithm `lambda` such that
`s = t^lambda mod N`, where `s` and `t` are elements of Z_N^*.
"""

from typing import List
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.numbers import sample_below
from tss_crypto.common.utils import int_to_bytes, bytes_to_int


Iterations = 80
ProofPrmBytesParts = Iterations * 2


class ProofPrm:
    """Represents a zero-knowledge proof of knowledge for ring-Pedersen parameters."""

    def __init__(self, A: List[int], Z: List[int]):
        self.A = A
        self.Z = Z

    @staticmethod
    def new_proof(ssid: int, s: int, t: int, N: int, Phi: int, lam: int) -> "ProofPrm":
        if not all([s, t, N, Phi, lam]):
            raise ValueError("Prm proof input is not valid")

        s, t, N, Phi, lam = map(gmpy2.mpz, (s, t, N, Phi, lam))

        a = [gmpy2.mpz(sample_below(Phi)) for _ in range(Iterations)]
        A = [gmpy2.powmod(t, ai, N) for ai in a]

        e = sha512_256i(*([ssid, s, t, N] + A))

        Z = [(a[i] + (((e >> i) & 1) * lam)) % Phi for i in range(Iterations)]

        return ProofPrm([int(val) for val in A], [int(val) for val in Z])

    @staticmethod
    def from_bytes(parts: List[bytes]) -> "ProofPrm":
        """Deserializes a proof from a list of byte strings."""
        if not parts or len(parts) != ProofPrmBytesParts:
            raise ValueError(
                f"expected {ProofPrmBytesParts} byte parts to construct ProofPrm"
            )
        bis = [bytes_to_int(b) for b in parts]
        return ProofPrm(bis[:Iterations], bis[Iterations:])

    def to_bytes_parts(self) -> List[bytes]:
        return [int_to_bytes(a) for a in self.A] + [int_to_bytes(z) for z in self.Z]

    def validate_basic(self) -> bool:
        if self.A is None or len(self.A) != Iterations:
            return False
        if self.Z is None or len(self.Z) != Iterations:
            return False
        return not any(v is None for v in self.A + self.Z)

    def verify(self, ssid: int, s: int, t: int, N: int) -> bool:
        if not self.validate_basic() or not all([s, t, N]) or N <= 0:
            return False

        s_mpz, t_mpz, N_mpz = map(gmpy2.mpz, (s, t, N))
        A_mpz = [gmpy2.mpz(a) for a in self.A]
        Z_mpz = [gmpy2.mpz(z) for z in self.Z]

        if not (1 < s_mpz < N_mpz) or not (1 < t_mpz < N_mpz) or s_mpz == t_mpz:
            return False
        if gmpy2.gcd(s_mpz, N_mpz) != 1 or gmpy2.gcd(t_mpz, N_mpz) != 1:
            return False
        for a in A_mpz:
            if not (1 < a < N_mpz):
                return False
        # Z values are exponents, not group elements.
        for z in Z_mpz:
            if z < 0:
                return False

        e = sha512_256i(*([ssid, s, t, N] + self.A))

        for i in range(Iterations):
            ei = (e >> i) & 1

            # t^Z_i == A_i * s^e_i (mod N)
            left = gmpy2.powmod(t_mpz, Z_mpz[i], N_mpz)
            right = (A_mpz[i] * gmpy2.powmod(s_mpz, ei, N_mpz)) % N_mpz

            if left != right:
                return False

        return True
