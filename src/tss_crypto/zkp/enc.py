"""
Paillier encryption in range proof (CGGMP21 figure 14).

The statement is K = Enc(k; rho) with k small, proven against the
verifier's ring-Pedersen parameters (NCap, s, t).
"""

from typing import List
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.paillier import PublicKey, get_random_positive_relatively_prime_int
from tss_crypto.common.ec import ECOperations
from tss_crypto.common.numbers import (
    rejection_sample,
    sample_below,
    check_invertible_and_valid_mod,
    is_in_interval,
)
from tss_crypto.common.utils import int_to_bytes, bytes_to_int

ProofEncBytesParts = 6


class ProofEnc:
    """
    Represents a ZKP proving knowledge of a plaintext `k` and randomness `rho`
    for a given Paillier ciphertext `K = Enc(k, rho)`.
    """

    def __init__(self, S: int, A: int, C: int, Z1: int, Z2: int, Z3: int):
        self.S = S
        self.A = A
        self.C = C
        self.Z1 = Z1
        self.Z2 = Z2
        self.Z3 = Z3

    @staticmethod
    def _challenge(ssid, ec, pk, NCap, s, t, K, S, A, C) -> gmpy2.mpz:
        e_hash = sha512_256i(
            ssid, pk.n, pk.gamma, ec.b, ec.n, ec.p, NCap, s, t, K, S, A, C
        )
        return gmpy2.mpz(rejection_sample(ec.n, e_hash))

    @staticmethod
    def new_proof(
        ssid: int,
        ec: ECOperations,
        pk: PublicKey,
        K: int,
        NCap: int,
        s: int,
        t: int,
        k: int,
        rho: int,
    ) -> "ProofEnc":
        if any(c is None for c in [ec, pk, K, NCap, s, t, k, rho]):
            raise ValueError("new_proof received a nil/zero argument")

        q = gmpy2.mpz(ec.n)
        N, NSq, gamma_pk = map(gmpy2.mpz, (pk.n, pk.n_square, pk.gamma))
        NCap, s, t, K = map(gmpy2.mpz, (NCap, s, t, K))
        k, rho = map(gmpy2.mpz, (k, rho))

        q3 = q**3
        qNCap = q * NCap
        q3NCap = q3 * NCap

        alpha = gmpy2.mpz(sample_below(q3))
        mu = gmpy2.mpz(sample_below(qNCap))
        gamma = gmpy2.mpz(sample_below(q3NCap))
        r = get_random_positive_relatively_prime_int(N)

        S = (gmpy2.powmod(s, k, NCap) * gmpy2.powmod(t, mu, NCap)) % NCap
        A = (gmpy2.powmod(gamma_pk, alpha, NSq) * gmpy2.powmod(r, N, NSq)) % NSq
        C_ = (gmpy2.powmod(s, alpha, NCap) * gmpy2.powmod(t, gamma, NCap)) % NCap

        e = ProofEnc._challenge(ssid, ec, pk, NCap, s, t, K, S, A, C_)

        z1 = e * k + alpha
        z2 = (gmpy2.powmod(rho, e, N) * r) % N
        z3 = e * mu + gamma

        return ProofEnc(int(S), int(A), int(C_), int(z1), int(z2), int(z3))

    @staticmethod
    def from_bytes(parts: List[bytes]) -> "ProofEnc":
        if not parts or len(parts) != ProofEncBytesParts:
            raise ValueError(
                f"expected {ProofEncBytesParts} byte parts to construct ProofEnc"
            )
        return ProofEnc(*[bytes_to_int(b) for b in parts])

    def to_bytes_parts(self) -> List[bytes]:
        return [
            int_to_bytes(v)
            for v in (self.S, self.A, self.C, self.Z1, self.Z2, self.Z3)
        ]

    def validate_basic(self) -> bool:
        return all(
            v is not None for v in (self.S, self.A, self.C, self.Z1, self.Z2, self.Z3)
        )

    def verify(
        self,
        ssid: int,
        ec: ECOperations,
        pk: PublicKey,
        NCap: int,
        s: int,
        t: int,
        K: int,
    ) -> bool:
        if not self.validate_basic() or not all([ec, pk, NCap, s, t, K]):
            return False

        q = gmpy2.mpz(ec.n)
        N, NSq, gamma_pk = map(gmpy2.mpz, (pk.n, pk.n_square, pk.gamma))
        NCap, s, t, K = map(gmpy2.mpz, (NCap, s, t, K))

        S, A, C = map(gmpy2.mpz, (self.S, self.A, self.C))
        Z1, Z2, Z3 = map(gmpy2.mpz, (self.Z1, self.Z2, self.Z3))

        q3 = q**3

        if not is_in_interval(Z1, q3):
            return False
        if not check_invertible_and_valid_mod(NCap, S, C):
            return False
        if not check_invertible_and_valid_mod(NSq, A, K):
            return False
        if not check_invertible_and_valid_mod(N, Z2):
            return False

        e = ProofEnc._challenge(
            ssid, ec, pk, NCap, s, t, K, self.S, self.A, self.C
        )

        # (1+N)^z1 * z2^N == A * K^e (mod N^2)
        left1 = (gmpy2.powmod(gamma_pk, Z1, NSq) * gmpy2.powmod(Z2, N, NSq)) % NSq
        right1 = (A * gmpy2.powmod(K, e, NSq)) % NSq
        if left1 != right1:
            return False

        # s^z1 * t^z3 == C * S^e (mod NCap)
        left2 = (gmpy2.powmod(s, Z1, NCap) * gmpy2.powmod(t, Z3, NCap)) % NCap
        right2 = (C * gmpy2.powmod(S, e, NCap)) % NCap
        if left2 != right2:
            return False

        return True
