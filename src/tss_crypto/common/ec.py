"""
Elliptic curve group operations used by every protocol phase.

Arithmetic is delegated to the `ecdsa` package (Jacobian coordinates); this
module only fixes the representation of points exchanged between parties and
the fixed-width SEC1 encoding used for hashing and serialization.
"""

from typing import Optional, Tuple
import hmac
import secrets

import gmpy2
from ecdsa import NIST256p, SECP256k1
from ecdsa.ellipticcurve import INFINITY, PointJacobi


SUPPORTED_CURVES = {
    "secp256k1": SECP256k1,
    "secp256r1": NIST256p,
}


class Point:
    """An affine point on a short Weierstrass curve, or the point at infinity."""

    __slots__ = ("x", "y", "curve", "is_infinity")

    def __init__(self, x: int, y: int, curve, is_infinity: bool = False):
        self.x = int(x)
        self.y = int(y)
        self.curve = curve
        self.is_infinity = is_infinity
        if not is_infinity and not curve.contains_point(self.x, self.y):
            raise ValueError("Point is not on the curve")

    @staticmethod
    def infinity(curve) -> "Point":
        return Point(0, 0, curve, is_infinity=True)

    @property
    def byte_len(self) -> int:
        return (self.curve.p().bit_length() + 7) // 8

    def to_bytes(self) -> bytes:
        """SEC1 compressed encoding; the identity is encoded as all zeroes."""
        if self.is_infinity:
            return b"\x00" * (self.byte_len + 1)
        prefix = b"\x03" if self.y & 1 else b"\x02"
        return prefix + self.x.to_bytes(self.byte_len, "big")

    @staticmethod
    def from_bytes(curve, data: bytes) -> "Point":
        size = (curve.p().bit_length() + 7) // 8
        if len(data) != size + 1:
            raise ValueError(f"Expected {size + 1} bytes for a compressed point")
        if data == b"\x00" * (size + 1):
            return Point.infinity(curve)
        if data[0] not in (2, 3):
            raise ValueError("Unknown point encoding prefix")

        p = curve.p()
        x = int.from_bytes(data[1:], "big")
        if x >= p:
            raise ValueError("Point x-coordinate is out of range")
        rhs = (pow(x, 3, p) + curve.a() * x + curve.b()) % p
        # Both supported curves have p = 3 mod 4.
        y = int(gmpy2.powmod(rhs, (p + 1) // 4, p))
        if (y * y) % p != rhs:
            raise ValueError("Point is not on the curve")
        if (y & 1) != (data[0] & 1):
            y = p - y
        return Point(x, y, curve)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        return hmac.compare_digest(self.to_bytes(), other.to_bytes())

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        if self.is_infinity:
            return "Point(infinity)"
        return f"Point({hex(self.x)}, {hex(self.y)})"


class ECOperations:
    """
    Scalar and point arithmetic for a prime-order curve.

    Protocols receive one instance at setup and never inspect the concrete
    curve beyond the public parameters exposed here.
    """

    def __init__(self, curve_name: str = "secp256k1"):
        if curve_name not in SUPPORTED_CURVES:
            raise ValueError(f"Unsupported curve: {curve_name}")
        self.name = curve_name
        self._spec = SUPPORTED_CURVES[curve_name]
        self.curve = self._spec.curve
        self.n = int(self._spec.order)
        self.p = int(self.curve.p())
        self.b = int(self.curve.b())
        generator = self._spec.generator
        self.G = Point(generator.x(), generator.y(), self.curve)

    @staticmethod
    def for_point(P: Point) -> "ECOperations":
        """Returns the operations for the supported curve `P` lies on."""
        for name, spec in SUPPORTED_CURVES.items():
            if spec.curve == P.curve:
                return ECOperations(name)
        raise ValueError("Point is on an unsupported curve")

    def random_scalar(self) -> int:
        """Samples a uniformly random non-zero scalar."""
        return secrets.randbelow(self.n - 1) + 1

    def infinity(self) -> Point:
        return Point.infinity(self.curve)

    def _to_jacobi(self, P: Point):
        return PointJacobi(self.curve, P.x, P.y, 1, self.n)

    def _from_affine(self, aff) -> Point:
        if aff == INFINITY:
            return self.infinity()
        return Point(aff.x(), aff.y(), self.curve)

    def scalar_mult(self, k: int, P: Optional[Point] = None) -> Point:
        """Computes k * P, or k * G when no point is given."""
        k = int(k) % self.n
        if P is None:
            if k == 0:
                return self.infinity()
            return self._from_affine((self._spec.generator * k).to_affine())
        if P.is_infinity or k == 0:
            return self.infinity()
        return self._from_affine((self._to_jacobi(P) * k).to_affine())

    def point_add(self, P: Point, Q: Point) -> Point:
        if P.is_infinity:
            return Q
        if Q.is_infinity:
            return P
        return self._from_affine((self._to_jacobi(P) + self._to_jacobi(Q)).to_affine())

    def point_sum(self, points) -> Point:
        total = self.infinity()
        for P in points:
            total = self.point_add(total, P)
        return total

    def scalar_inv(self, k: int) -> int:
        return int(gmpy2.invert(int(k) % self.n, self.n))

    def point_from_bytes(self, data: bytes) -> Point:
        return Point.from_bytes(self.curve, data)

    def verify(self, X: Point, h: int, signature: Tuple[int, int]) -> bool:
        """Standard ECDSA verification of (r, s) over the scalar h."""
        r, s = signature
        if not (0 < r < self.n and 0 < s < self.n):
            return False
        if X.is_infinity:
            return False
        s_inv = self.scalar_inv(s)
        u1 = (h * s_inv) % self.n
        u2 = (r * s_inv) % self.n
        R = self.point_add(self.scalar_mult(u1), self.scalar_mult(u2, X))
        if R.is_infinity:
            return False
        return R.x % self.n == r
