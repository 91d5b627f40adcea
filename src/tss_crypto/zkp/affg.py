"""
Paillier affine operation with group commitment in range (CGGMP21 figure 15).

The prover shows that D = C^x * Enc0(y; rho), Y = Enc1(y; rhoy) and X = x*G,
with x and y in range, without revealing x, y or the randomness.
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

ProofAffgBytesParts = 13


class ProofAffg:
    """
    Zero-knowledge proof for the Aff-g relation.

    pk0 is the verifier's Paillier key (the one C, D live under), pk1 the
    prover's own key (the one Y lives under).
    """

    def __init__(
        self,
        S: int,
        T: int,
        A: int,
        Bx: Point,
        By: int,
        E: int,
        F: int,
        Z1: int,
        Z2: int,
        Z3: int,
        Z4: int,
        W: int,
        Wy: int,
    ) -> None:
        self.S = S
        self.T = T
        self.A = A
        self.Bx = Bx
        self.By = By
        self.E = E
        self.F = F
        self.Z1 = Z1
        self.Z2 = Z2
        self.Z3 = Z3
        self.Z4 = Z4
        self.W = W
        self.Wy = Wy

    @staticmethod
    def _challenge(
        ssid, ec, pk0, pk1, NCap, s, t, C, D, Y, X, S, T, A, Bx, By, E, F
    ) -> gmpy2.mpz:
        e_hash = sha512_256i(
            ssid,
            ec.b,
            ec.n,
            ec.p,
            pk0.n,
            pk1.n,
            NCap,
            s,
            t,
            C,
            D,
            Y,
            point_to_int(X),
            S,
            T,
            A,
            point_to_int(Bx),
            By,
            E,
            F,
        )
        return gmpy2.mpz(rejection_sample(ec.n, e_hash))

    @staticmethod
    def new_proof(
        ssid: int,
        ec: ECOperations,
        pk0: PublicKey,
        pk1: PublicKey,
        NCap: int,
        s: int,
        t: int,
        C: int,
        D: int,
        Y: int,
        X: Point,
        x: int,
        y: int,
        rho: int,
        rhoy: int,
    ) -> "ProofAffg":
        """Generates a new zero-knowledge proof for the Aff-g relation."""
        if any(v is None for v in [ec, pk0, pk1, NCap, s, t, C, D, Y, X, x, y, rho, rhoy]):
            raise ValueError("new_proof() received a nil argument")

        q = gmpy2.mpz(ec.n)
        N0, NSq0, gamma0 = map(gmpy2.mpz, (pk0.n, pk0.n_square, pk0.gamma))
        N1, NSq1, gamma1 = map(gmpy2.mpz, (pk1.n, pk1.n_square, pk1.gamma))
        NCap, s, t = map(gmpy2.mpz, (NCap, s, t))
        C, D, Y = map(gmpy2.mpz, (C, D, Y))
        x, y, rho, rhoy = map(gmpy2.mpz, (x, y, rho, rhoy))

        q3 = q**3
        q7 = q**7
        qNCap = q * NCap
        q3NCap = q3 * NCap

        alpha = gmpy2.mpz(sample_below(q3))
        beta = gmpy2.mpz(sample_below(q7))
        r = get_random_positive_relatively_prime_int(N0)
        ry = get_random_positive_relatively_prime_int(N1)
        gamma = gmpy2.mpz(sample_below(q3NCap))
        m = gmpy2.mpz(sample_below(qNCap))
        delta = gmpy2.mpz(sample_below(q3NCap))
        mu = gmpy2.mpz(sample_below(qNCap))

        # A = C^alpha * (1+N0)^beta * r^N0 mod N0^2
        A = (
            gmpy2.powmod(C, alpha, NSq0)
            * gmpy2.powmod(gamma0, beta, NSq0)
            * gmpy2.powmod(r, N0, NSq0)
        ) % NSq0

        Bx = ec.scalar_mult(int(alpha % q))
        By = (gmpy2.powmod(gamma1, beta, NSq1) * gmpy2.powmod(ry, N1, NSq1)) % NSq1

        E = (gmpy2.powmod(s, alpha, NCap) * gmpy2.powmod(t, gamma, NCap)) % NCap
        S = (gmpy2.powmod(s, x, NCap) * gmpy2.powmod(t, m, NCap)) % NCap
        F = (gmpy2.powmod(s, beta, NCap) * gmpy2.powmod(t, delta, NCap)) % NCap
        T = (gmpy2.powmod(s, y, NCap) * gmpy2.powmod(t, mu, NCap)) % NCap

        e = ProofAffg._challenge(
            ssid, ec, pk0, pk1, NCap, s, t, C, D, Y, X, S, T, A, Bx, By, E, F
        )

        z1 = e * x + alpha
        z2 = e * y + beta
        z3 = e * m + gamma
        z4 = e * mu + delta
        w = (gmpy2.powmod(rho, e, N0) * r) % N0
        wy = (gmpy2.powmod(rhoy, e, N1) * ry) % N1

        return ProofAffg(
            int(S),
            int(T),
            int(A),
            Bx,
            int(By),
            int(E),
            int(F),
            int(z1),
            int(z2),
            int(z3),
            int(z4),
            int(w),
            int(wy),
        )

    @staticmethod
    def from_bytes(ec: ECOperations, parts: List[bytes]) -> "ProofAffg":
        """Deserializes the proof from a list of byte parts."""
        if not parts or len(parts) != ProofAffgBytesParts:
            raise ValueError(
                f"expected {ProofAffgBytesParts} parts to construct ProofAffg"
            )

        ints = [bytes_to_int(b) for b in parts]
        Bx = ec.point_from_bytes(parts[3])
        return ProofAffg(ints[0], ints[1], ints[2], Bx, *ints[4:])

    def to_bytes_parts(self) -> List[bytes]:
        """Serializes the proof into a list of byte parts."""
        return [
            int_to_bytes(self.S),
            int_to_bytes(self.T),
            int_to_bytes(self.A),
            self.Bx.to_bytes(),
            int_to_bytes(self.By),
            int_to_bytes(self.E),
            int_to_bytes(self.F),
            int_to_bytes(self.Z1),
            int_to_bytes(self.Z2),
            int_to_bytes(self.Z3),
            int_to_bytes(self.Z4),
            int_to_bytes(self.W),
            int_to_bytes(self.Wy),
        ]

    def validate_basic(self) -> bool:
        return all(
            v is not None
            for v in [
                self.S,
                self.T,
                self.A,
                self.Bx,
                self.By,
                self.E,
                self.F,
                self.Z1,
                self.Z2,
                self.Z3,
                self.Z4,
                self.W,
                self.Wy,
            ]
        )

    def verify(
        self,
        ssid: int,
        ec: ECOperations,
        pk0: PublicKey,
        pk1: PublicKey,
        NCap: int,
        s: int,
        t: int,
        C: int,
        D: int,
        Y: int,
        X: Point,
    ) -> bool:
        """Verifies the zero-knowledge proof for the Aff-g relation."""
        if not self.validate_basic():
            return False

        q = gmpy2.mpz(ec.n)
        N0, NSq0, gamma0 = map(gmpy2.mpz, (pk0.n, pk0.n_square, pk0.gamma))
        N1, NSq1, gamma1 = map(gmpy2.mpz, (pk1.n, pk1.n_square, pk1.gamma))
        NCap, s, t = map(gmpy2.mpz, (NCap, s, t))
        C, D, Y = map(gmpy2.mpz, (C, D, Y))

        S, T, A, By = map(gmpy2.mpz, (self.S, self.T, self.A, self.By))
        E, F, W, Wy = map(gmpy2.mpz, (self.E, self.F, self.W, self.Wy))
        Z1, Z2, Z3, Z4 = map(gmpy2.mpz, (self.Z1, self.Z2, self.Z3, self.Z4))

        q3 = q**3
        q7 = q**7

        if not is_in_interval(Z1, q3):
            return False
        if not is_in_interval(Z2, q7):
            return False
        if not check_invertible_and_valid_mod(NSq0, A, C, D):
            return False
        if not check_invertible_and_valid_mod(NSq1, By, Y):
            return False
        if not check_invertible_and_valid_mod(N0, W):
            return False
        if not check_invertible_and_valid_mod(N1, Wy):
            return False
        if not check_invertible_and_valid_mod(NCap, E, F, S, T):
            return False
        if min(Z1, Z2, Z3, Z4) <= 0:
            return False

        e = ProofAffg._challenge(
            ssid,
            ec,
            pk0,
            pk1,
            NCap,
            s,
            t,
            C,
            D,
            Y,
            X,
            self.S,
            self.T,
            self.A,
            self.Bx,
            self.By,
            self.E,
            self.F,
        )

        # C^Z1 * (1+N0)^Z2 * W^N0 == D^e * A (mod N0^2)
        left1 = gmpy2.powmod(C, Z1, NSq0)
        left1 = (left1 * gmpy2.powmod(gamma0, Z2, NSq0)) % NSq0
        left1 = (left1 * gmpy2.powmod(W, N0, NSq0)) % NSq0
        right1 = (gmpy2.powmod(D, e, NSq0) * A) % NSq0
        if left1 != right1:
            return False

        # Z1*G == e*X + Bx
        if ec.scalar_mult(int(Z1 % q)) != ec.point_add(ec.scalar_mult(int(e), X), self.Bx):
            return False

        # (1+N1)^Z2 * Wy^N1 == Y^e * By (mod N1^2)
        left3 = (gmpy2.powmod(gamma1, Z2, NSq1) * gmpy2.powmod(Wy, N1, NSq1)) % NSq1
        right3 = (gmpy2.powmod(Y, e, NSq1) * By) % NSq1
        if left3 != right3:
            return False

        # s^Z1 * t^Z3 == S^e * E (mod NCap)
        left4a = (gmpy2.powmod(s, Z1, NCap) * gmpy2.powmod(t, Z3, NCap)) % NCap
        right4a = (gmpy2.powmod(S, e, NCap) * E) % NCap
        if left4a != right4a:
            return False

        # s^Z2 * t^Z4 == T^e * F (mod NCap)
        left4b = (gmpy2.powmod(s, Z2, NCap) * gmpy2.powmod(t, Z4, NCap)) % NCap
        right4b = (gmpy2.powmod(T, e, NCap) * F) % NCap
        if left4b != right4b:
            return False

        return True
