"""
Group element vs Paillier encryption proof (CGGMP21 figure 25).

The prover knows `x` and `rho` such that:
1. the ciphertext `C` is Enc(x; rho) under the prover's Paillier key, and
2. the point `X` equals `x * g` for a public base point `g`.
"""

from typing import List
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.paillier import PublicKey, get_random_positive_relatively_prime_int
from tss_crypto.common.ec import ECOperations, Point
from tss_crypto.common.numbers import (
    rejection_sample,
    sample_below,
    check_invertible_and_valid_mod,
    is_in_interval,
)
from tss_crypto.common.utils import int_to_bytes, bytes_to_int, point_to_int

ProofLogstarBytesParts = 7


class ProofLogstar:
    """Represents a zero-knowledge Log* proof and its associated data."""

    def __init__(self, S: int, A: int, Y: Point, D: int, Z1: int, Z2: int, Z3: int):
        self.S = S
        self.A = A
        self.Y = Y
        self.D = D
        self.Z1 = Z1
        self.Z2 = Z2
        self.Z3 = Z3

    @staticmethod
    def _challenge(ssid, ec, pk, C, X, g, S, A, Y, D, NCap, s, t) -> gmpy2.mpz:
        e_hash = sha512_256i(
            ssid,
            pk.n,
            pk.gamma,
            ec.b,
            ec.n,
            ec.p,
            C,
            point_to_int(X),
            point_to_int(g),
            S,
            A,
            point_to_int(Y),
            D,
            NCap,
            s,
            t,
        )
        return gmpy2.mpz(rejection_sample(ec.n, e_hash))

    @staticmethod
    def new_proof(
        ssid: int,
        ec: ECOperations,
        pk: PublicKey,
        C: int,
        X: Point,
        g: Point,
        rho: int,
        x: int,
        NCap: int,
        s: int,
        t: int,
    ) -> "ProofLogstar":
        """
        Generates a new Log* proof.

        Args:
            ssid: Session identifier for the Fiat-Shamir transform.
            ec: Elliptic curve operations helper.
            pk: The prover's Paillier public key.
            C: The Paillier ciphertext, Enc(pk, x, rho).
            X: The elliptic curve point, x * g.
            g: The base point for the discrete logarithm relation.
            rho: The randomness used to create the Paillier ciphertext C.
            x: The secret value (plaintext of C and scalar for X).
            NCap, s, t: The verifier's ring-Pedersen parameters.
        """
        if any(c is None for c in [ec, pk, C, X, g, NCap, s, t, x, rho]):
            raise ValueError("new_proof received a nil/zero argument")

        q = gmpy2.mpz(ec.n)
        N, NSq, gamma_pk = map(gmpy2.mpz, (pk.n, pk.n_square, pk.gamma))
        C, x, rho = map(gmpy2.mpz, (C, x, rho))
        NCap, s, t = map(gmpy2.mpz, (NCap, s, t))

        q3 = q**3
        qNCap = q * NCap
        q3NCap = q3 * NCap

        alpha = gmpy2.mpz(sample_below(q3))
        mu = gmpy2.mpz(sample_below(qNCap))
        gamma = gmpy2.mpz(sample_below(q3NCap))
        r = get_random_positive_relatively_prime_int(N)

        S = (gmpy2.powmod(s, x, NCap) * gmpy2.powmod(t, mu, NCap)) % NCap
        A = (gmpy2.powmod(gamma_pk, alpha, NSq) * gmpy2.powmod(r, N, NSq)) % NSq
        Y = ec.scalar_mult(int(alpha % q), g)
        D = (gmpy2.powmod(s, alpha, NCap) * gmpy2.powmod(t, gamma, NCap)) % NCap

        e = ProofLogstar._challenge(ssid, ec, pk, C, X, g, S, A, Y, D, NCap, s, t)

        z1 = e * x + alpha
        z2 = (gmpy2.powmod(rho, e, N) * r) % N
        z3 = e * mu + gamma

        return ProofLogstar(int(S), int(A), Y, int(D), int(z1), int(z2), int(z3))

    @staticmethod
    def from_bytes(ec: ECOperations, parts: List[bytes]) -> "ProofLogstar":
        """Deserializes a proof from a list of byte strings."""
        if not parts or len(parts) != ProofLogstarBytesParts:
            raise ValueError(f"expected {ProofLogstarBytesParts} byte parts")

        Y = ec.point_from_bytes(parts[2])
        return ProofLogstar(
            bytes_to_int(parts[0]),
            bytes_to_int(parts[1]),
            Y,
            *[bytes_to_int(b) for b in parts[3:]],
        )

    def to_bytes_parts(self) -> List[bytes]:
        return [
            int_to_bytes(self.S),
            int_to_bytes(self.A),
            self.Y.to_bytes(),
            int_to_bytes(self.D),
            int_to_bytes(self.Z1),
            int_to_bytes(self.Z2),
            int_to_bytes(self.Z3),
        ]

    def validate_basic(self) -> bool:
        return all(
            p is not None
            for p in [self.S, self.A, self.Y, self.D, self.Z1, self.Z2, self.Z3]
        )

    def verify(
        self,
        ssid: int,
        ec: ECOperations,
        pk: PublicKey,
        C: int,
        X: Point,
        g: Point,
        NCap: int,
        s: int,
        t: int,
    ) -> bool:
        """
        Verifies the Log* proof for the statement (pk, C, X, g).
        """
        if not self.validate_basic() or not all([ec, pk, C, X, g, NCap, s, t]):
            return False

        q = gmpy2.mpz(ec.n)
        N, NSq, gamma_pk = map(gmpy2.mpz, (pk.n, pk.n_square, pk.gamma))
        C, NCap, s, t = map(gmpy2.mpz, (C, NCap, s, t))
        S, A, D, Z1, Z2, Z3 = map(
            gmpy2.mpz, (self.S, self.A, self.D, self.Z1, self.Z2, self.Z3)
        )

        q3 = q**3
        if not is_in_interval(Z1, q3):
            return False
        if not check_invertible_and_valid_mod(NCap, S, D):
            return False
        if not check_invertible_and_valid_mod(NSq, A, C):
            return False
        if not check_invertible_and_valid_mod(N, Z2):
            return False

        e = ProofLogstar._challenge(
            ssid, ec, pk, C, X, g, self.S, self.A, self.Y, self.D, NCap, s, t
        )

        # (1+N)^z1 * z2^N == C^e * A (mod N^2)
        left1 = (gmpy2.powmod(gamma_pk, Z1, NSq) * gmpy2.powmod(Z2, N, NSq)) % NSq
        right1 = (gmpy2.powmod(C, e, NSq) * A) % NSq
        if left1 != right1:
            return False

        # z1*g == e*X + Y
        left2 = ec.scalar_mult(int(Z1 % q), g)
        right2 = ec.point_add(ec.scalar_mult(int(e), X), self.Y)
        if left2 != right2:
            return False

        # s^z1 * t^z3 == D * S^e (mod NCap)
        left3 = (gmpy2.powmod(s, Z1, NCap) * gmpy2.powmod(t, Z3, NCap)) % NCap
        right3 = (D * gmpy2.powmod(S, e, NCap)) % NCap
        if left3 != right3:
            return False

        return True
