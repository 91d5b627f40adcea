"""
No-small-factor proof (CGGMP21 figure 28).

Shows that both factors of N0 are of size about sqrt(N0), using the
verifier's ring-Pedersen parameters as the commitment scheme.
"""

from typing import List
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.ec import ECOperations
from tss_crypto.common.numbers import (
    rejection_sample,
    sample_below,
    check_invertible_and_valid_mod,
    is_in_interval,
)
from tss_crypto.common.utils import int_to_bytes, bytes_to_int


ProofFacBytesParts = 12


class ProofFac:
    """
    Zero-knowledge proof that the prover knows a factorization N0 = p*q
    with p and q both below 2^l * sqrt(N0).

    `V` may be negative; it travels with a sign part on the wire.
    """

    def __init__(
        self,
        P: int,
        Q: int,
        A: int,
        B: int,
        T: int,
        Sigma: int,
        Z1: int,
        Z2: int,
        W1: int,
        W2: int,
        V: int,
    ) -> None:
        self.P = P
        self.Q = Q
        self.A = A
        self.B = B
        self.T = T
        self.Sigma = Sigma
        self.Z1 = Z1
        self.Z2 = Z2
        self.W1 = W1
        self.W2 = W2
        self.V = V

    @staticmethod
    def _challenge(ssid, ec, N0, NCap, s, t, P, Q, A, B, T, sigma) -> gmpy2.mpz:
        e_hash = sha512_256i(
            ssid, N0, NCap, s, t, P, Q, A, B, T, sigma, ec.b, ec.n, ec.p
        )
        return gmpy2.mpz(rejection_sample(ec.n, e_hash))

    @staticmethod
    def new_proof(
        ssid: int,
        ec: ECOperations,
        N0: int,
        NCap: int,
        s: int,
        t: int,
        N0p: int,
        N0q: int,
    ) -> "ProofFac":
        """
        Generates a new ProofFac using the Fiat-Shamir heuristic.

        Args:
            ssid: Session identifier for the proof context.
            ec: Elliptic curve operations object.
            N0: The modulus whose factorization (N0p, N0q) is known.
            NCap: The verifier's ring-Pedersen modulus.
            s, t: The verifier's ring-Pedersen parameters.
            N0p, N0q: The prime factors of N0.
        """
        if not all([N0, NCap, s, t, N0p, N0q]):
            raise ValueError("new_proof received a nil/zero argument")

        q = gmpy2.mpz(ec.n)
        q3 = q**3
        N0, NCap = map(gmpy2.mpz, (N0, NCap))
        s, t, N0p, N0q = map(gmpy2.mpz, (s, t, N0p, N0q))

        sqrtN0 = gmpy2.isqrt(N0)
        leSqrtN0 = q3 * sqrtN0
        lNCap = q * NCap
        lN0NCap = q * N0 * NCap
        leN0NCap = q3 * N0 * NCap
        leNCap = q3 * NCap

        alpha = gmpy2.mpz(sample_below(leSqrtN0))
        beta = gmpy2.mpz(sample_below(leSqrtN0))
        mu = gmpy2.mpz(sample_below(lNCap))
        nu = gmpy2.mpz(sample_below(lNCap))
        sigma = gmpy2.mpz(sample_below(lN0NCap))
        x = gmpy2.mpz(sample_below(leNCap))
        y = gmpy2.mpz(sample_below(leNCap))
        r = gmpy2.mpz(sample_below(leN0NCap))

        P = (gmpy2.powmod(s, N0p, NCap) * gmpy2.powmod(t, mu, NCap)) % NCap
        Q = (gmpy2.powmod(s, N0q, NCap) * gmpy2.powmod(t, nu, NCap)) % NCap
        A = (gmpy2.powmod(s, alpha, NCap) * gmpy2.powmod(t, x, NCap)) % NCap
        B = (gmpy2.powmod(s, beta, NCap) * gmpy2.powmod(t, y, NCap)) % NCap
        T = (gmpy2.powmod(Q, alpha, NCap) * gmpy2.powmod(t, r, NCap)) % NCap

        e = ProofFac._challenge(ssid, ec, N0, NCap, s, t, P, Q, A, B, T, sigma)

        z1 = e * N0p + alpha
        z2 = e * N0q + beta
        w1 = e * mu + x
        w2 = e * nu + y
        v = e * (sigma - (nu * N0p)) + r

        return ProofFac(
            int(P),
            int(Q),
            int(A),
            int(B),
            int(T),
            int(sigma),
            int(z1),
            int(z2),
            int(w1),
            int(w2),
            int(v),
        )

    @staticmethod
    def from_bytes(parts: List[bytes]) -> "ProofFac":
        """Deserializes a proof from a list of byte strings."""
        if not parts or len(parts) != ProofFacBytesParts:
            raise ValueError(
                f"expected {ProofFacBytesParts} byte parts to construct ProofFac"
            )
        ints = [bytes_to_int(b) for b in parts[:-1]]
        if parts[-1] not in (b"", b"\x01"):
            raise ValueError("invalid sign part in ProofFac")
        if parts[-1] == b"\x01":
            ints[10] = -ints[10]
        return ProofFac(*ints)

    def to_bytes_parts(self) -> List[bytes]:
        """Serializes the proof into a list of byte strings."""
        return [
            int_to_bytes(self.P),
            int_to_bytes(self.Q),
            int_to_bytes(self.A),
            int_to_bytes(self.B),
            int_to_bytes(self.T),
            int_to_bytes(self.Sigma),
            int_to_bytes(self.Z1),
            int_to_bytes(self.Z2),
            int_to_bytes(self.W1),
            int_to_bytes(self.W2),
            int_to_bytes(abs(self.V)),
            b"\x01" if self.V < 0 else b"",
        ]

    def validate_basic(self) -> bool:
        return all(
            v is not None
            for v in [
                self.P,
                self.Q,
                self.A,
                self.B,
                self.T,
                self.Sigma,
                self.Z1,
                self.Z2,
                self.W1,
                self.W2,
                self.V,
            ]
        )

    def verify(
        self, ssid: int, ec: ECOperations, N0: int, NCap: int, s: int, t: int
    ) -> bool:
        """
        Verifies the proof for N0 against the verifier's own (NCap, s, t).
        """
        if not self.validate_basic() or not all([N0, NCap, s, t]):
            return False
        if N0 <= 0 or NCap <= 0:
            return False
        q = gmpy2.mpz(ec.n)
        q3 = q**3
        N0, NCap, s, t = map(gmpy2.mpz, (N0, NCap, s, t))
        P, Q, A, B, T = map(gmpy2.mpz, (self.P, self.Q, self.A, self.B, self.T))
        Sigma, Z1, Z2 = map(gmpy2.mpz, (self.Sigma, self.Z1, self.Z2))
        W1, W2, V = map(gmpy2.mpz, (self.W1, self.W2, self.V))

        sqrtN0 = gmpy2.isqrt(N0)
        leSqrtN0 = q3 * sqrtN0

        if not is_in_interval(Z1, leSqrtN0):
            return False
        if not is_in_interval(Z2, leSqrtN0):
            return False
        if not check_invertible_and_valid_mod(NCap, P, Q, A, B, T):
            return False

        e = ProofFac._challenge(
            ssid, ec, N0, NCap, s, t, self.P, self.Q, self.A, self.B, self.T, self.Sigma
        )

        # s^Z1 * t^W1 == A * P^e (mod NCap)
        LHS1 = (gmpy2.powmod(s, Z1, NCap) * gmpy2.powmod(t, W1, NCap)) % NCap
        RHS1 = (A * gmpy2.powmod(P, e, NCap)) % NCap
        if LHS1 != RHS1:
            return False
        # s^Z2 * t^W2 == B * Q^e (mod NCap)
        LHS2 = (gmpy2.powmod(s, Z2, NCap) * gmpy2.powmod(t, W2, NCap)) % NCap
        RHS2 = (B * gmpy2.powmod(Q, e, NCap)) % NCap
        if LHS2 != RHS2:
            return False
        # Q^Z1 * t^V == T * (s^N0 * t^Sigma)^e (mod NCap)
        R = (gmpy2.powmod(s, N0, NCap) * gmpy2.powmod(t, Sigma, NCap)) % NCap
        LHS3 = (gmpy2.powmod(Q, Z1, NCap) * gmpy2.powmod(t, V, NCap)) % NCap
        RHS3 = (T * gmpy2.powmod(R, e, NCap)) % NCap
        if LHS3 != RHS3:
            return False
        return True
