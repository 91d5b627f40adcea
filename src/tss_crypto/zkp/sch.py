from typing import List, Tuple
import gmpy2

from tss_crypto.zkp.hash import sha512_256i
from tss_crypto.common.ec import ECOperations, Point
from tss_crypto.common.numbers import rejection_sample
from tss_crypto.common.utils import int_to_bytes, bytes_to_int, point_to_int


ProofSchBytesParts = 2


class ProofSch:
    """
    Implements a Schnorr proof of knowledge for a discrete logarithm on an
    elliptic curve. It proves knowledge of a scalar `x` for a public key `X = xG`.
    """

    def __init__(self, A: Point, Z: int):
        """
        Constructs a Schnorr proof.

        :param A: The commitment point, `A = alpha * G`.
        :param Z: The response scalar, `z = alpha + e*x`.
        """
        self.A = A
        self.Z = Z

    @staticmethod
    def challenge(ssid: int, ec: ECOperations, X: Point, A: Point) -> int:
        e_hash = sha512_256i(
            ssid,
            ec.b,
            ec.n,
            ec.p,
            point_to_int(X),
            point_to_int(ec.G),
            point_to_int(A),
        )
        return rejection_sample(ec.n, e_hash)

    @staticmethod
    def new_proof(ssid: int, ec: ECOperations, X: Point, x: int) -> "ProofSch":
        """
        Generates a new Schnorr proof for the secret scalar `x`.
        """
        if x is None or X is None:
            raise ValueError("Cannot generate proof from invalid input.")

        alpha, A = ProofSch.new_alpha(ec)
        return ProofSch.new_proof_with_alpha(ssid, ec, X, A, alpha, x)

    @staticmethod
    def new_alpha(ec: ECOperations) -> Tuple[int, Point]:
        """Generates a random nonce scalar `alpha` and its corresponding point `A`."""
        alpha = ec.random_scalar()
        A = ec.scalar_mult(alpha)
        return alpha, A

    @staticmethod
    def new_proof_with_alpha(
        ssid: int, ec: ECOperations, X: Point, A: Point, alpha: int, x: int
    ) -> "ProofSch":
        """
        Generates a Schnorr proof using a pre-computed nonce `alpha` and point `A`.

        Keygen commits to `A` before the session id is known, which is why the
        nonce can be supplied from outside.
        """
        if None in (x, X, A, alpha):
            raise ValueError("Cannot generate proof from invalid input.")

        e = ProofSch.challenge(ssid, ec, X, A)

        q_mpz, alpha_mpz, e_mpz, x_mpz = map(gmpy2.mpz, (ec.n, alpha, e, x))
        z_mpz = (alpha_mpz + e_mpz * x_mpz) % q_mpz

        return ProofSch(A, int(z_mpz))

    @staticmethod
    def from_bytes(ec: ECOperations, parts: List[bytes]) -> "ProofSch":
        """Deserializes a proof from a list of byte strings."""
        if not parts or len(parts) != ProofSchBytesParts:
            raise ValueError(
                f"Expected {ProofSchBytesParts} parts to construct ProofSch"
            )
        A = ec.point_from_bytes(parts[0])
        z = bytes_to_int(parts[1])
        if z >= ec.n:
            raise ValueError("Schnorr response is out of range")
        return ProofSch(A, z)

    def to_bytes_parts(self) -> List[bytes]:
        """Serializes the proof into a list of byte strings."""
        return [self.A.to_bytes(), int_to_bytes(self.Z)]

    def verify(self, ssid: int, ec: ECOperations, X: Point) -> bool:
        """
        Verifies the Schnorr proof.
        """
        if self.A is None or self.Z is None or X is None:
            return False
        if self.A.is_infinity:
            return False

        e = ProofSch.challenge(ssid, ec, X, self.A)

        # z*G == A + e*X
        left = ec.scalar_mult(self.Z)
        right = ec.point_add(self.A, ec.scalar_mult(e, X))

        return left == right
