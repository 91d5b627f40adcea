"""
Paillier-Blum modulus proof (CGGMP21 figure 16).

Shows that N is odd, not a prime power, and the product of two primes
congruent to 3 mod 4, without revealing the factors.
"""

from typing import List
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.numbers import (
    sample_invertible_with_neg_jacobi,
    is_quadratic_residue,
    rejection_sample,
)
from tss_crypto.common.utils import int_to_bytes, bytes_to_int


Iterations = 80
ProofModBytesParts = Iterations * 2 + 3


def _derive_challenges(ssid: int, W: int, N: int) -> List[gmpy2.mpz]:
    Y: List[int] = []
    for _ in range(Iterations):
        ei = sha512_256i(*([ssid, W, N] + Y))
        Y.append(rejection_sample(N, ei))
    return [gmpy2.mpz(y) for y in Y]


class ProofMod:
    """
    Represents a zero-knowledge proof that N is a Paillier-Blum modulus.

    The choice bits of every iteration are packed one byte each into A and B,
    behind a 0xFF header byte.
    """

    def __init__(self, W: int, X: List[int], A: int, B: int, Z: List[int]):
        self.W = W
        self.X = X
        self.A = A
        self.B = B
        self.Z = Z

    @staticmethod
    def new_proof(ssid: int, N: int, P: int, Q: int) -> "ProofMod":
        """
        Generates a new proof that N = P * Q with P = Q = 3 mod 4.

        Args:
            ssid: Session identifier binding the proof to its context.
            N: The modulus.
            P: The first prime factor of N.
            Q: The second prime factor of N.
        """
        if not all([N, P, Q]):
            raise ValueError("Proof mod input is not valid")

        N, P, Q = map(gmpy2.mpz, (N, P, Q))
        Phi = (P - 1) * (Q - 1)

        W = gmpy2.mpz(sample_invertible_with_neg_jacobi(N))
        Y = _derive_challenges(ssid, int(W), int(N))

        try:
            invN = gmpy2.invert(N, Phi)
        except ZeroDivisionError:
            raise ValueError("N is not invertible modulo Phi")

        X: List[gmpy2.mpz] = [gmpy2.mpz(0)] * Iterations
        Z: List[gmpy2.mpz] = [gmpy2.mpz(0)] * Iterations

        A = gmpy2.mpz(0xFF)
        B = gmpy2.mpz(0xFF)

        # Exponent for fourth roots modulo a Blum integer.
        expo = gmpy2.powmod((Phi + 4) >> 3, 2, Phi)

        for i in range(Iterations):
            for j in range(4):
                a = j & 1
                b = (j & 2) >> 1
                Yi = Y[i]
                if a > 0:
                    Yi = -Yi % N
                if b > 0:
                    Yi = (W * Yi) % N

                if is_quadratic_residue(Yi, P) and is_quadratic_residue(Yi, Q):
                    X[i] = gmpy2.powmod(Yi, expo, N)
                    Z[i] = gmpy2.powmod(Y[i], invN, N)
                    A = (A << 8) | a
                    B = (B << 8) | b
                    break
            else:
                raise ValueError("Modulus is not a Blum integer")

        return ProofMod(
            int(W), [int(x) for x in X], int(A), int(B), [int(z) for z in Z]
        )

    @staticmethod
    def from_bytes(parts: List[bytes]) -> "ProofMod":
        if not parts or len(parts) != ProofModBytesParts:
            raise ValueError(
                f"expected {ProofModBytesParts} byte parts to construct ProofMod"
            )

        ints = [bytes_to_int(b) for b in parts]
        W = ints[0]
        X = ints[1 : Iterations + 1]
        A = ints[Iterations + 1]
        B = ints[Iterations + 2]
        Z = ints[Iterations + 3 :]
        return ProofMod(W, X, A, B, Z)

    def to_bytes_parts(self) -> List[bytes]:
        out: List[bytes] = [int_to_bytes(self.W)]
        out += [int_to_bytes(x) for x in self.X]
        out.append(int_to_bytes(self.A))
        out.append(int_to_bytes(self.B))
        out += [int_to_bytes(z) for z in self.Z]
        return out

    def validate_basic(self) -> bool:
        return all(
            [
                self.W is not None,
                self.X is not None and len(self.X) == Iterations,
                self.A is not None,
                self.B is not None,
                self.Z is not None and len(self.Z) == Iterations,
            ]
        )

    def verify(self, ssid: int, N: int) -> bool:
        """
        Verifies the proof for the modulus N.
        """
        if not self.validate_basic() or not N or N <= 0:
            return False

        N = gmpy2.mpz(N)
        if not gmpy2.is_odd(N) or gmpy2.is_prime(N):
            return False

        W, A, B = map(gmpy2.mpz, (self.W, self.A, self.B))
        X = [gmpy2.mpz(x) for x in self.X]
        Z = [gmpy2.mpz(z) for z in self.Z]

        if gmpy2.jacobi(W, N) != -1:
            return False
        if not (0 < W < N and all(0 < z < N for z in Z) and all(0 < x < N for x in X)):
            return False

        # 80 choice bytes plus the 0xFF header byte.
        expected_len_in_bits = 8 * (Iterations + 1)
        if A.bit_length() != expected_len_in_bits or B.bit_length() != expected_len_in_bits:
            return False

        Y = _derive_challenges(ssid, self.W, int(N))

        for i in range(Iterations):
            # Z_i^N == Y_i (mod N)
            if gmpy2.powmod(Z[i], N, N) != Y[i]:
                return False

            shift = 8 * (Iterations - 1 - i)
            a = (A >> shift) & 0xFF
            b = (B >> shift) & 0xFF
            if a not in (0, 1) or b not in (0, 1):
                return False

            # X_i^4 == (-1)^a * W^b * Y_i (mod N)
            left = gmpy2.powmod(X[i], 4, N)
            right = Y[i]
            if a > 0:
                right = -right % N
            if b > 0:
                right = (W * right) % N

            if left != right:
                return False

        return True
